import logging
import sys
from datetime import datetime, timezone
import pandas as pd
sys.path.append('.')
from Class.Diagnostics.resource_ids import resource_name
from Class.Report_handler.config_param import Config
from Class.Report_handler import Azure_Blob_Convertion
from Class.Email import notifications_email

HELPERS_LOGGER = 'Class'


def finding_rows(resource_id, resource_type_name, findings):
    timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
    rows = []
    for finding in findings:
        row = {
            'ResourceName': resource_name(resource_id) if resource_id else "",
            'ResourceType': str(resource_type_name),
            'ResourceID': str(resource_id),
            'Timestamp': timestamp
        }
        row.update(finding)
        rows.append(row)
    return rows


def log_findings(logger, findings, prefix=""):
    for finding in findings:
        level = logging.WARNING if finding['Level'] == "Warning" else logging.INFO
        logger.log(level, f"{prefix}{finding['Message']}")


def findings_dataframe(rows):
    return pd.DataFrame(rows, columns=Config.finding_columns)


def publish_report(rows, report_name, report_path=None, upload=False):
    df = findings_dataframe(rows)
    if report_path:
        df.to_excel(report_path, index=False)
    if upload:
        Azure_Blob_Convertion.Blob_function(df, report_name, 'main_name')
    if (df['Level'] == "Warning").any():
        notifications_email.send_email(report_name, report_name + ' Findings Report', "excel", report_name, df)
    return df


def attach_run_log(csv_error_handler):
    # helper modules log under Class.*, outside the runbook's own logger
    helpers = logging.getLogger(HELPERS_LOGGER)
    helpers.setLevel(logging.DEBUG)
    helpers.addHandler(csv_error_handler)


def detach_run_log(csv_error_handler):
    logging.getLogger(HELPERS_LOGGER).removeHandler(csv_error_handler)


def publish_logs(csv_error_handler, report_name, upload=False):
    all_logs = csv_error_handler.get_all_logs()
    warning_logs = csv_error_handler.get_warning_logs()
    error_logs = csv_error_handler.get_error_logs()
    if upload and all_logs:
        Azure_Blob_Convertion.Blob_function(pd.DataFrame(all_logs), report_name, 'all_logs')
    if upload and warning_logs:
        Azure_Blob_Convertion.Blob_function(pd.DataFrame(warning_logs), report_name, 'warning_logs')
    if upload and error_logs:
        Azure_Blob_Convertion.Blob_function(pd.DataFrame(error_logs), report_name, 'error_logs')
    if error_logs:
        notifications_email.send_email(report_name, report_name + ' Error Report', "excel", report_name, pd.DataFrame(error_logs))
