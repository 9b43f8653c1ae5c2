import logging
import os
import smtplib
import sys
import tempfile
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.mime.base import MIMEBase
from email import encoders
sys.path.append('.')
from Class.Report_handler.config_param import Config

logger = logging.getLogger(__name__)


def build_message(subject, email_body, email_type, excel_file_name=None, dataframe=None):
    message = MIMEMultipart()
    message["From"] = Config.sender_email
    message["To"] = Config.receiver_email
    message["Subject"] = subject

    email_content = f"""
    <html>
      <head>
        <style>
          body {{
            font-family: Arial, sans-serif;
            line-height: 1.6;
            margin: 20px;
          }}
          .header {{
            background-color: #007bff;
            color: white;
            padding: 10px;
            text-align: center;
          }}
          .content {{
            padding: 20px;
            background-color: #f0f0f0;
            border-radius: 5px;
          }}
        </style>
      </head>
      <body>
        <div class="header">
          <h2>{subject}</h2>
        </div>
        <div class="content">
          <p>{email_body}</p>
        </div>
      </body>
    </html>
    """
    message.attach(MIMEText(email_content, "html"))

    if email_type == 'excel':
        if dataframe is None:
            raise ValueError("DataFrame cannot be None when email_type is 'excel'")
        with tempfile.TemporaryDirectory() as tmp_dir:
            excel_file_path = os.path.join(tmp_dir, excel_file_name + '.xlsx')
            dataframe.to_excel(excel_file_path, index=False)
            with open(excel_file_path, "rb") as attachment:
                part = MIMEBase("application", "octet-stream")
                part.set_payload(attachment.read())

        encoders.encode_base64(part)
        part.add_header(
            "Content-Disposition",
            f"attachment; filename= {excel_file_name}.xlsx",
        )
        message.attach(part)
    return message


def send_email(subject, email_body, email_type, excel_file_name=None, dataframe=None):
    if not (Config.smtp_server and Config.sender_email and Config.receiver_email):
        logger.debug("SMTP settings missing, notification skipped")
        return False
    try:
        message = build_message(subject, email_body, email_type, excel_file_name, dataframe)
        with smtplib.SMTP(Config.smtp_server, Config.smtp_port) as server:
            server.sendmail(Config.sender_email, Config.receiver_email.split(','), message.as_string())
        logger.info("Email sent successfully")
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email: {e}")
        return False
