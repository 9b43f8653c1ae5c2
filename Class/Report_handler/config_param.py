import os


class Config:

    # Azure Resource Manager
    resource_manager_endpoint = os.environ.get("AZURE_RESOURCE_MANAGER", "https://management.azure.com")
    storage_insight_api_version = os.environ.get("STORAGE_INSIGHT_API_VERSION", "2015-03-20")
    service_fabric_api_version = "2018-02-01"
    subscription_id = os.environ.get("AZURE_SUBSCRIPTION_ID", "")

    # Blob details (These are the place-holders names)
    keyvault_url = os.environ.get("REPORT_KEYVAULT_URL", "")
    ReportingStorageAccountKey = "ReportingStorageAccountKey"
    ReportingStorageName = "ReportsStorageAccountName"

    # Email details
    sender_email = os.environ.get("REPORT_SENDER", "")
    receiver_email = os.environ.get("REPORT_RECIPIENTS", "")
    smtp_server = os.environ.get("SMTP_SERVER", "")
    smtp_port = int(os.environ.get("SMTP_PORT", "25"))

    # Report columns
    finding_columns = ['ResourceName', 'ResourceType', 'ResourceID', 'Level', 'Check', 'Provider', 'Expected', 'Observed', 'Message', 'Timestamp']
