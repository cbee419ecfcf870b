"""
Notification helpers - student result e-mails (Resend) and in-app notices
for the exam owner.
"""

import asyncio
import html
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional

import resend

from examgrader.config import logger, settings
from examgrader.repository import GradingRepository, NOTIFICATIONS


class NotificationSender(ABC):

    @abstractmethod
    async def send(self, to: str, subject: str, html_body: str) -> bool:
        """Hand the message to the provider. True when it was accepted."""


class ResendNotificationSender(NotificationSender):
    """Send e-mails via the Resend API."""

    def __init__(self, api_key: Optional[str] = None, from_email: Optional[str] = None):
        self.api_key = api_key or settings.RESEND_API_KEY
        self.from_email = from_email or settings.RESEND_FROM_EMAIL

    async def send(self, to, subject, html_body):
        if not self.api_key:
            logger.error("Resend API key not configured. Add RESEND_API_KEY to .env")
            return False

        params = {
            "from": self.from_email,
            "to": [to],
            "subject": subject,
            "html": html_body,
        }
        resend.api_key = self.api_key
        # The resend SDK is synchronous
        loop = asyncio.get_event_loop()
        response = await loop.run_in_executor(None, lambda: resend.Emails.send(params))

        message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        if not message_id:
            logger.warning(f"Resend accepted no message for {to}: no response id")
            return False
        logger.info(f"📧 Result e-mail sent to {to} (id {message_id})")
        return True


# ============== RESULT E-MAIL ==============

def _text(value) -> str:
    return html.escape(str(value)) if value is not None else ""


def _format_points(value) -> str:
    if value is None:
        return "0"
    value = float(value)
    return str(int(value)) if value.is_integer() else f"{value:g}"


def build_result_email(
    name_or_email: str,
    exam_title: str,
    total_points: float,
    comments_overall: Optional[str] = None,
    detailed_answers: Optional[List[dict]] = None,
    definitive_source: Optional[str] = None,
) -> str:
    """
    Render the student's result e-mail. Every user-supplied value is escaped.

    detailed_answers items: {question_text, max_points, answer_text, grade}
    where grade is an AnswerGrade (or None). Per-question points and comments
    come from the definitive track, manual when none was chosen.
    """
    comments_html = ""
    if comments_overall:
        comments_html = (
            "<p><strong>General comments:</strong></p>"
            '<p style="padding: 10px; border: 1px solid #eee; background-color: #f9f9f9;">'
            f"{_text(comments_overall)}</p>"
        )

    questions_html = ""
    if detailed_answers:
        used_source = definitive_source or "MANUAL"
        blocks = ['<h3 style="margin-top: 30px;">Grading details</h3>']
        for index, qa in enumerate(detailed_answers, start=1):
            grade = qa.get("grade")
            points = None
            comment = None
            if grade is not None:
                if used_source == "AI":
                    points, comment = grade.ai_suggested_points, grade.ai_suggested_comment
                else:
                    points, comment = grade.manual_points, grade.manual_comment

            answer_text = qa.get("answer_text") or ""
            blocks.append(f"""
        <div style="margin-bottom: 25px; border: 1px solid #ddd; border-radius: 8px; padding: 15px;">
          <h4 style="margin-top: 0; border-bottom: 1px solid #eee; padding-bottom: 10px;">Question {index}</h4>
          <p><strong>Question:</strong> {_text(qa.get("question_text"))}</p>
          <p><strong>Maximum points:</strong> {_format_points(qa.get("max_points"))}</p>
          <div style="margin: 15px 0; padding: 10px; background-color: #f5f5f5; border-radius: 4px;">
            <p style="margin-top: 0;"><strong>Your answer:</strong></p>
            <p style="white-space: pre-wrap;">{_text(answer_text) if answer_text else "&lt;No answer&gt;"}</p>
          </div>
          <p><strong>Score:</strong> {_format_points(points)} / {_format_points(qa.get("max_points"))} points</p>
          {f"<p><strong>Comment:</strong> {_text(comment)}</p>" if comment else ""}
        </div>""")
        questions_html = "".join(blocks)

    return f"""
    <div style="font-family: sans-serif; line-height: 1.6; max-width: 800px; margin: 0 auto;">
      <h2 style="color: #333; border-bottom: 2px solid #007bff; padding-bottom: 10px;">Exam results: {_text(exam_title)}</h2>
      <p>Hello {_text(name_or_email)},</p>
      <p>The grading of your exam is now available. You will find the details of your evaluation below.</p>
      <hr>
      <p style="font-size: 1.5em; text-align: center; margin: 20px 0;"><strong>Final grade: {_format_points(total_points)} points</strong></p>
      {comments_html}
      {questions_html}
      <hr>
      <p style="font-size: 0.8em; color: #777; text-align: center; margin-top: 30px;">Thank you for taking part.</p>
    </div>
    """


# ============== IN-APP NOTIFICATIONS ==============

async def create_notification(repo: GradingRepository, user_id: str, notification_type: str,
                              title: str, message: str, link: str = None):
    """Helper function to create notifications"""
    notification_id = f"notif_{uuid.uuid4().hex[:12]}"
    notification = {
        "notification_id": notification_id,
        "user_id": user_id,
        "type": notification_type,
        "title": title,
        "message": message,
        "link": link,
        "is_read": False,
        "created_at": datetime.now(timezone.utc).isoformat()
    }
    await repo.insert(NOTIFICATIONS, notification)
    return notification_id
