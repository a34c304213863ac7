"""
AWS SES Email Service.

Sends notification and verification-code emails. Every failure is logged
and reported as False; callers never see transport exceptions.
"""

import html
import logging
from typing import Optional
import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, BotoCoreError
from app.core.config import settings
from app.models.verification import VerificationCodeType

logger = logging.getLogger(__name__)


CODE_EMAIL_SUBJECTS = {
    VerificationCodeType.EMAIL_VERIFICATION: "Verify your email address",
    VerificationCodeType.PASSWORD_RESET: "Your password reset code",
    VerificationCodeType.TWO_FACTOR_AUTH: "Your sign-in code",
    VerificationCodeType.PHONE_VERIFICATION: "Verify your phone number",
    VerificationCodeType.ACCOUNT_DELETION: "Confirm your account deletion",
    VerificationCodeType.SENSITIVE_ACTION: "Confirm your sensitive action",
}

CODE_DESCRIPTIONS = {
    VerificationCodeType.EMAIL_VERIFICATION: "To verify your email address, use the code below:",
    VerificationCodeType.PASSWORD_RESET: "To reset your password, use the code below:",
    VerificationCodeType.TWO_FACTOR_AUTH: "To finish signing in, use the code below:",
    VerificationCodeType.PHONE_VERIFICATION: "To verify your phone number, use the code below:",
    VerificationCodeType.ACCOUNT_DELETION: "To confirm the deletion of your account, use the code below:",
    VerificationCodeType.SENSITIVE_ACTION: "To confirm this sensitive action, use the code below:",
}


class EmailService:
    """
    Service for sending emails via AWS SES.

    Supports both development (sandbox) and production modes. Network calls
    are bounded by OUTBOUND_TIMEOUT_SECONDS.
    """

    def __init__(self):
        """Initialize AWS SES client"""
        session_kwargs = {
            'region_name': settings.AWS_REGION,
            'config': Config(
                connect_timeout=settings.OUTBOUND_TIMEOUT_SECONDS,
                read_timeout=settings.OUTBOUND_TIMEOUT_SECONDS,
                retries={'max_attempts': 2},
            ),
        }

        # Add credentials if provided (otherwise uses IAM role)
        if settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
            session_kwargs['aws_access_key_id'] = settings.AWS_ACCESS_KEY_ID
            session_kwargs['aws_secret_access_key'] = settings.AWS_SECRET_ACCESS_KEY

        self.ses_client = boto3.client('ses', **session_kwargs)

    @property
    def is_configured(self) -> bool:
        return bool(settings.AWS_SES_FROM_EMAIL)

    def send_email(self, to: str, subject: str, html_body: str, text_body: Optional[str] = None) -> bool:
        """
        Send a single email.

        Args:
            to: Recipient email address
            subject: Subject line
            html_body: HTML body
            text_body: Optional plain text fallback

        Returns:
            bool: True if SES accepted the message, False otherwise
        """
        if not self.is_configured:
            logger.warning(f"Email sender not configured, skipping email '{subject}'")
            return False

        body = {'Html': {'Data': html_body, 'Charset': 'UTF-8'}}
        if text_body:
            body['Text'] = {'Data': text_body, 'Charset': 'UTF-8'}

        try:
            response = self.ses_client.send_email(
                Source=f"{settings.AWS_SES_FROM_NAME} <{settings.AWS_SES_FROM_EMAIL}>",
                Destination={'ToAddresses': [to]},
                Message={
                    'Subject': {'Data': subject, 'Charset': 'UTF-8'},
                    'Body': body,
                }
            )

            message_id = response.get('MessageId')
            logger.info(f"Email sent to {to} (MessageId: {message_id})")
            return True

        except ClientError as e:
            error_code = e.response['Error']['Code']
            error_message = e.response['Error']['Message']
            logger.error(f"AWS SES ClientError: {error_code} - {error_message}")

            if error_code == 'MessageRejected':
                logger.error(f"Email rejected: {error_message}")
            elif error_code == 'MailFromDomainNotVerified':
                logger.error("Sender email not verified in SES")

            return False

        except BotoCoreError as e:
            logger.error(f"AWS BotoCoreError: {str(e)}")
            return False

    def send_verification_code(
        self,
        to_email: str,
        code: str,
        code_type: VerificationCodeType,
        expires_in: str,
        user_name: Optional[str] = None
    ) -> bool:
        """
        Send a one-time code email with copy matching the code type.

        Args:
            to_email: Recipient email address
            code: 6-digit code
            code_type: What the code authorises
            expires_in: Human readable lifetime, e.g. "15 minutes"
            user_name: Optional name for the greeting

        Returns:
            bool: True if email sent successfully, False otherwise
        """
        subject = CODE_EMAIL_SUBJECTS.get(code_type, "Your verification code")
        html_body = self._build_code_html(code, code_type, expires_in, user_name)
        text_body = self._build_code_text(code, code_type, expires_in, user_name)
        return self.send_email(to_email, subject, html_body, text_body)

    def _build_code_html(
        self,
        code: str,
        code_type: VerificationCodeType,
        expires_in: str,
        user_name: Optional[str] = None
    ) -> str:
        greeting = f"Hi {html.escape(user_name)}," if user_name else "Hi there,"
        description = CODE_DESCRIPTIONS.get(code_type, "Use the code below:")

        return f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Verification code</title>
</head>
<body style="margin: 0; padding: 0; font-family: Arial, sans-serif; background-color: #f4f4f4;">
    <table role="presentation" style="width: 100%; border-collapse: collapse;">
        <tr>
            <td align="center" style="padding: 40px 0;">
                <table role="presentation" style="width: 600px; border-collapse: collapse; background-color: #ffffff; border-radius: 8px;">
                    <tr>
                        <td style="padding: 40px 40px 20px 40px; text-align: center;">
                            <h1 style="margin: 0; color: #333333; font-size: 28px; font-weight: 600;">
                                Your verification code
                            </h1>
                        </td>
                    </tr>
                    <tr>
                        <td style="padding: 0 40px 40px 40px;">
                            <p style="margin: 0 0 20px 0; color: #666666; font-size: 16px; line-height: 1.5;">
                                {greeting}
                            </p>
                            <p style="margin: 0 0 30px 0; color: #666666; font-size: 16px; line-height: 1.5;">
                                {description}
                            </p>
                            <div style="background-color: #f8f9fa; border-radius: 8px; padding: 30px; text-align: center; margin: 0 0 30px 0;">
                                <div style="font-size: 36px; font-weight: 700; letter-spacing: 8px; color: #667eea; font-family: 'Courier New', monospace;">
                                    {code}
                                </div>
                            </div>
                            <p style="margin: 0 0 20px 0; color: #666666; font-size: 14px; line-height: 1.5;">
                                This code will expire in <strong>{expires_in}</strong>.
                            </p>
                            <p style="margin: 0 0 20px 0; color: #856404; font-size: 14px; line-height: 1.5;">
                                Never share this code. Our team will never ask you for it.
                            </p>
                            <p style="margin: 0; color: #999999; font-size: 13px; line-height: 1.5;">
                                If you didn't request this code, you can safely ignore this email.
                            </p>
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>
"""

    def _build_code_text(
        self,
        code: str,
        code_type: VerificationCodeType,
        expires_in: str,
        user_name: Optional[str] = None
    ) -> str:
        greeting = f"Hi {user_name}," if user_name else "Hi there,"
        description = CODE_DESCRIPTIONS.get(code_type, "Use the code below:")

        return f"""{greeting}

{description}

{code}

This code will expire in {expires_in}.

Never share this code with anyone.

---
Candi Tracker
"""


# Singleton instance
email_service = EmailService()
