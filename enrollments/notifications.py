"""
Slack and email notifications for the enrollment workflow.

Notifications are a side channel: every public function here logs and
swallows delivery errors so that creating or reviewing a request never
fails because Slack or the mail server is down.
"""
import logging

from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone
from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

logger = logging.getLogger('enrollment_workflow')


class SlackNotificationService:
    """
    Posts enrollment events to the staff Slack channel
    """

    def __init__(self, token=None, channel=None):
        self._token = token
        self._channel = channel
        self._client = None
        self._initialized = False

    def _initialize_client(self):
        """Initialize Slack client with bot token"""
        self._initialized = True
        token = self._token if self._token is not None else settings.SLACK_BOT_TOKEN
        self.channel = self._channel or settings.SLACK_CHANNEL
        if not token:
            logger.info("SLACK_BOT_TOKEN is not set; Slack notifications are disabled")
            return

        try:
            client = WebClient(token=token)
            client.auth_test()
            self._client = client
            logger.info(f"Slack client initialized. Channel: {self.channel}")
        except SlackApiError as e:
            logger.error(f"Error initializing Slack client: {e.response['error']}")
        except Exception as e:
            logger.error(f"Unexpected error initializing Slack client: {e}")

    @property
    def client(self):
        if not self._initialized:
            self._initialize_client()
        return self._client

    def is_available(self):
        return self.client is not None

    def _post(self, text, blocks):
        if not self.is_available():
            return False

        try:
            response = self.client.chat_postMessage(channel=self.channel, text=text, blocks=blocks)
            logger.info(f"Slack notification sent: {response['ts']}")
            return True
        except SlackApiError as e:
            logger.error(f"Error sending Slack notification: {e.response['error']}")
        except Exception as e:
            logger.error(f"Unexpected error sending Slack notification: {e}", exc_info=True)
        return False

    def send_enrollment_request_notification(self, enrollment_request):
        return self._post(
            f"New enrollment request: {enrollment_request.course.title}",
            self._format_request_message(enrollment_request),
        )

    def send_request_reviewed_notification(self, enrollment_request):
        reviewer = enrollment_request.reviewed_by.display_name if enrollment_request.reviewed_by else 'system'
        emoji = '✅' if enrollment_request.status == 'APPROVED' else '❌'
        return self.send_system_notification(
            f"{emoji} Enrollment request {enrollment_request.get_status_display().lower()}",
            f"*{enrollment_request.student_name}* ({enrollment_request.student_email}) for "
            f"*{enrollment_request.course.title}*, reviewed by {reviewer}",
        )

    def _format_request_message(self, enrollment_request):
        message_text = enrollment_request.message or 'No message'
        if len(message_text) > 1000:
            message_text = message_text[:1000] + "..."

        contact_handle = {
            'WHATSAPP': enrollment_request.whatsapp_number,
            'TELEGRAM': enrollment_request.telegram_username and f"@{enrollment_request.telegram_username}",
            'PHONE': enrollment_request.student_phone,
            'EMAIL': enrollment_request.student_email,
        }.get(enrollment_request.preferred_contact)

        tutor = enrollment_request.selected_tutor
        admin_link = (
            f"{settings.ADMIN_URL}/admin/enrollments/enrollmentrequest/{enrollment_request.id}/change/"
        )

        return [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"🎓 New Enrollment Request - {enrollment_request.course.title}"
                }
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Name:*\n{enrollment_request.student_name}"},
                    {"type": "mrkdwn", "text": f"*Email:*\n{enrollment_request.student_email}"},
                    {"type": "mrkdwn", "text": f"*Phone:*\n{enrollment_request.student_phone}"},
                    {
                        "type": "mrkdwn",
                        "text": f"*Preferred contact:*\n{enrollment_request.get_preferred_contact_display()}"
                                f" {contact_handle or ''}"
                    },
                    {"type": "mrkdwn", "text": f"*Price:*\n{enrollment_request.course.price} {settings.PAYMENT_CURRENCY}"},
                    {"type": "mrkdwn", "text": f"*Tutor:*\n{tutor.display_name if tutor else 'Any'}"},
                ]
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Message:*\n```{message_text}```"}
            },
            {
                "type": "context",
                "elements": [
                    {
                        "type": "mrkdwn",
                        "text": f"Submitted: {enrollment_request.created_at.strftime('%Y-%m-%d %H:%M:%S')} | "
                                f"ID: {str(enrollment_request.id)[:8]}..."
                    }
                ]
            },
            {
                "type": "actions",
                "elements": [
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "Review in Admin"},
                        "url": admin_link,
                        "action_id": "view_admin"
                    }
                ]
            }
        ]

    def send_system_notification(self, title, message):
        blocks = [
            {"type": "header", "text": {"type": "plain_text", "text": title}},
            {"type": "section", "text": {"type": "mrkdwn", "text": message}},
            {
                "type": "context",
                "elements": [
                    {"type": "mrkdwn", "text": f"Time: {timezone.now().strftime('%Y-%m-%d %H:%M:%S')}"}
                ]
            }
        ]
        return self._post(title, blocks)


# Global instance
slack_service = SlackNotificationService()


def notify_new_request(enrollment_request):
    return slack_service.send_enrollment_request_notification(enrollment_request)


def _decision_email(enrollment_request):
    course = enrollment_request.course
    manager = settings.MANAGER_CONTACT
    if enrollment_request.status == 'APPROVED':
        subject = f"You're enrolled in {course.title}"
        body = (
            f"Hello {enrollment_request.student_name},\n\n"
            f"Your payment has been confirmed and you now have access to \"{course.title}\".\n"
            f"Sign in to start learning.\n"
        )
    else:
        subject = f"Your enrollment request for {course.title}"
        body = (
            f"Hello {enrollment_request.student_name},\n\n"
            f"Unfortunately we could not approve your request for \"{course.title}\".\n"
        )
        if enrollment_request.admin_notes:
            body += f"\nNote from our team: {enrollment_request.admin_notes}\n"
    body += (
        f"\nQuestions? Contact {manager['name']}: WhatsApp {manager['whatsapp']}, "
        f"Telegram @{manager['telegram'].lstrip('@')}, {manager['email']}.\n"
    )
    return subject, body


def send_decision_email(enrollment_request):
    subject, body = _decision_email(enrollment_request)
    try:
        send_mail(
            subject,
            body,
            settings.DEFAULT_FROM_EMAIL,
            [enrollment_request.student_email],
            fail_silently=False,
        )
        return True
    except Exception as e:
        logger.error(f"Failed to email {enrollment_request.student_email}: {e}", exc_info=True)
        return False


def notify_request_reviewed(enrollment_request):
    slack_service.send_request_reviewed_notification(enrollment_request)
    send_decision_email(enrollment_request)
