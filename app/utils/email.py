import logging
import os
import smtplib
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Dict, List, Optional, Union

from app.core.config import Settings

logger = logging.getLogger(__name__)


class EmailService:
    """SMTP notifications. Disabled (every send returns False) when SMTP_HOST is unset."""

    def __init__(self, config: Settings):
        self.config = config
        self.school_name = config.SCHOOL_NAME
        self.enabled = bool(config.SMTP_HOST)
        if not self.enabled:
            logger.warning("SMTP_HOST not configured, outbound email is disabled")

    def _layout(self, title: str, body: str) -> str:
        return f"""
    <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px; border: 1px solid #eee;">
                <h2 style="color: #1e3a8a; text-align: center;">{self.school_name}</h2>
                <h3>{title}</h3>
                {body}
                <hr style="border: 0; border-top: 1px solid #eee; margin: 20px 0;" />
                <p style="font-size: 12px; color: #777; text-align: center;">
                    This is an automated message from {self.school_name}.
                </p>
            </div>
        </body>
    </html>
    """

    def send_email(
        self,
        to: Union[str, List[str]],
        subject: str,
        html_content: str,
        attachments: Optional[List[str]] = None,
    ) -> bool:
        recipients = [to] if isinstance(to, str) else list(to)
        if not self.enabled:
            logger.info("Email disabled, skipped '%s' to %s", subject, ", ".join(recipients))
            return False

        message = MIMEMultipart("mixed")
        message["Subject"] = subject
        message["From"] = f"{self.config.EMAILS_FROM_NAME or self.school_name} <{self.config.EMAILS_FROM_EMAIL}>"
        message["To"] = ", ".join(recipients)
        message.attach(MIMEText(html_content, "html"))

        for path in attachments or []:
            with open(path, "rb") as fh:
                part = MIMEApplication(fh.read(), Name=os.path.basename(path))
            part["Content-Disposition"] = f'attachment; filename="{os.path.basename(path)}"'
            message.attach(part)

        try:
            with smtplib.SMTP(self.config.SMTP_HOST, self.config.SMTP_PORT or 587) as server:
                if self.config.SMTP_TLS:
                    server.starttls()
                if self.config.SMTP_USER:
                    server.login(self.config.SMTP_USER, self.config.SMTP_PASSWORD)
                server.sendmail(self.config.EMAILS_FROM_EMAIL, recipients, message.as_string())
            return True
        except Exception as e:
            logger.error("Failed to send email to %s: %s", ", ".join(recipients), e)
            return False

    def send_welcome_email(self, to: str, user_name: str, role: str, temp_password: Optional[str] = None) -> bool:
        password_line = ""
        if temp_password:
            password_line = (
                f"<p>Your temporary password is <strong>{temp_password}</strong>. "
                "Please change it after your first login.</p>"
            )
        body = f"""
                <p>Hello {user_name},</p>
                <p>Your {role} account has been created. You can sign in with this email address.</p>
                {password_line}
        """
        return self.send_email(to, f"Welcome to {self.school_name}", self._layout("Welcome", body))

    def send_fee_reminder(self, to: str, student_name: str, fee: Dict) -> bool:
        body = f"""
                <p>This is a reminder that the following fee for <strong>{student_name}</strong> is outstanding:</p>
                <ul>
                    <li>Fee: {fee.get("name")}</li>
                    <li>Amount due: {fee.get("remaining_amount")}</li>
                    <li>Due date: {fee.get("due_date")}</li>
                </ul>
        """
        return self.send_email(to, f"Fee reminder for {student_name}", self._layout("Fee Reminder", body))

    def send_attendance_alert(self, to: str, student_name: str, attendance: Dict) -> bool:
        body = f"""
                <p><strong>{student_name}</strong> was marked <strong>{attendance.get("status")}</strong>
                on {attendance.get("date")} ({attendance.get("class_name")}).</p>
                <p>{attendance.get("remarks") or ""}</p>
        """
        return self.send_email(to, f"Attendance alert: {student_name}", self._layout("Attendance Alert", body))

    def send_grade_notification(self, to: str, student_name: str, grade: Dict) -> bool:
        body = f"""
                <p>A new grade has been recorded for <strong>{student_name}</strong>.</p>
                <ul>
                    <li>Subject: {grade.get("subject")}</li>
                    <li>Assessment: {grade.get("assessment_type")}</li>
                    <li>Marks: {grade.get("marks_obtained")} / {grade.get("total_marks")}</li>
                    <li>Grade: {grade.get("grade_letter")} ({grade.get("percentage")}%)</li>
                </ul>
        """
        return self.send_email(to, f"New grade for {student_name}", self._layout("Grade Notification", body))

    def send_password_reset_email(self, to: str, user_name: str, otp: str, valid_minutes: int) -> bool:
        body = f"""
                <p>Hello {user_name},</p>
                <p>Use the following code to reset your password:</p>
                <div style="background-color: #f3f4f6; padding: 20px; text-align: center; font-size: 24px; font-weight: bold; letter-spacing: 5px; color: #1e3a8a; margin: 20px 0;">
                    {otp}
                </div>
                <p>This code is valid for {valid_minutes} minutes. If you did not request this, please ignore this email.</p>
        """
        return self.send_email(to, f"{self.school_name} - Password Reset", self._layout("Password Reset", body))

    def send_report_card(self, to: str, student_name: str, semester: str, attachment_path: Optional[str] = None) -> bool:
        body = f"""
                <p>The report card for <strong>{student_name}</strong> for {semester} is now available.</p>
        """
        attachments = [attachment_path] if attachment_path else None
        return self.send_email(
            to, f"Report card: {student_name} ({semester})", self._layout("Report Card", body), attachments
        )

    def send_custom_email(self, to: Union[str, List[str]], subject: str, message: str,
                          attachments: Optional[List[str]] = None) -> bool:
        return self.send_email(to, subject, self._layout(subject, f"<p>{message}</p>"), attachments)

    def close(self) -> None:
        logger.info("Email service closed")
