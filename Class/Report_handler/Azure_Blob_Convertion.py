from azure.storage.blob import BlobServiceClient
from azure.core.exceptions import ResourceNotFoundError, AzureError
from io import BytesIO
from datetime import datetime, timezone
import logging
import pandas as pd
import sys
from azure.identity import DefaultAzureCredential
from azure.keyvault.secrets import SecretClient

sys.path.append('.')
from Class.Report_handler.config_param import Config

logger = logging.getLogger(__name__)


def report_file_name(name, status, now=None):
    now = now or datetime.now(timezone.utc)
    if status == "main_name":
        return f"{name}_{now.strftime('%Y-%m-%d %H-%M-%S UTC')}.xlsx"
    elif status == "all_logs":
        return "All_Execution_Logs.xlsx"
    elif status == "warning_logs":
        return "Warning_Execution_Logs.xlsx"
    elif status == "error_logs":
        return "Error_Execution_Logs.xlsx"
    raise ValueError(f"Unknown report status {status!r}")


def get_connection_string(credential=None):
    credential = credential or DefaultAzureCredential()
    secret_client = SecretClient(vault_url=Config.keyvault_url, credential=credential)
    account_key = secret_client.get_secret(Config.ReportingStorageAccountKey).value
    account_name = secret_client.get_secret(Config.ReportingStorageName).value
    return f"DefaultEndpointsProtocol=https;AccountName={account_name};AccountKey={account_key};EndpointSuffix=core.windows.net"


def create_container_if_not_exists(blob_service_client, container_name):
    container_client = blob_service_client.get_container_client(container_name)
    try:
        container_client.get_container_properties()
    except ResourceNotFoundError:
        logger.info(f"Container '{container_name}' does not exist. Creating container...")
        container_client = blob_service_client.create_container(container_name)
    return container_client


def dataframe_to_excel(df):
    output = BytesIO()
    with pd.ExcelWriter(output, engine='openpyxl') as writer:
        df.to_excel(writer, index=False)
    return output.getvalue()


def Blob_function(df, name, status, blob_service_client=None):
    """Store a report DataFrame as an Excel blob, appending to an existing workbook of the same name."""
    if blob_service_client is None and not Config.keyvault_url:
        logger.debug("REPORT_KEYVAULT_URL not set, report upload skipped")
        return None
    try:
        if blob_service_client is None:
            blob_service_client = BlobServiceClient.from_connection_string(get_connection_string())
        create_container_if_not_exists(blob_service_client, name)
        file = report_file_name(name, status)
        blob_client = blob_service_client.get_blob_client(name, file)

        if blob_client.exists():
            byte_data = blob_client.download_blob().readall()
            with BytesIO(byte_data) as bytes_io:
                existing_df = pd.read_excel(bytes_io, engine='openpyxl')
            combined_df = pd.concat([existing_df, df], ignore_index=True)
            blob_client.upload_blob(dataframe_to_excel(combined_df), overwrite=True)
        else:
            blob_client.upload_blob(dataframe_to_excel(df))

        logger.info(f"Upload successful! File name: {file}")
        return file

    except AzureError as e:
        logger.error(f"Report upload to container {name} failed: {e}")
        return None
