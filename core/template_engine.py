# core/template_engine.py
"""
Email composition for contact form submissions

Renders the operator notification and the submitter confirmation from
Jinja2 templates with HTML autoescaping, so submitted text can never inject
markup into either email. A plain-text alternative is derived from each
rendered HTML body.
"""

import re
import html
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Tuple

from jinja2 import Environment, select_autoescape, StrictUndefined
from jinja2.exceptions import TemplateError
from markupsafe import Markup
from bs4 import BeautifulSoup

from core.validation import NormalizedSubmission

logger = logging.getLogger(__name__)


DEMO_BOOKING_URL = 'https://calendar.notion.so/meet/camille-m52pt1shz/0d4pv3lcz'
LOGO_URL = 'https://jaide.care/images/jaide-logo---rectangle---no-background.png'
SITE_URL = 'https://jaide.care'
SUPPORT_ADDRESS = 'contact@jaide.care'

USER_CONFIRMATION_SUBJECT = "Thank you for contacting Jaide - We'll be in touch soon"
TIMESTAMP_FORMAT = '%m/%d/%Y, %I:%M:%S %p'


TEAM_NOTIFICATION_TEMPLATE = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #4CAF50;">New Contact Form Submission</h2>

  <div style="background: #f8f9fa; padding: 20px; border-radius: 8px; margin: 20px 0;">
    <h3 style="margin-top: 0; color: #333;">Contact Information</h3>
    <p><strong>Name:</strong> {{ first_name }} {{ last_name }}</p>
    <p><strong>Email:</strong> <a href="mailto:{{ email }}">{{ email }}</a></p>
    <p><strong>Job Title:</strong> {{ job_title }}</p>
    <p><strong>Healthcare Institution:</strong> {{ institution }}</p>
  </div>
{% if message %}
  <div style="background: #fff; padding: 20px; border-left: 4px solid #4CAF50; margin: 20px 0;">
    <h3 style="margin-top: 0; color: #333;">Message</h3>
    <p style="line-height: 1.6;">{{ message | email_safe }}</p>
  </div>
{% endif %}
  <div style="margin-top: 30px; padding-top: 20px; border-top: 1px solid #eee; color: #666; font-size: 12px;">
    <p>This email was sent from the jaide.care contact form on {{ submitted_at }}.</p>
  </div>
</div>
"""


USER_CONFIRMATION_TEMPLATE = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="text-align: center; margin-bottom: 30px;">
    <img src="{{ logo_url }}" alt="Jaide Logo" style="max-width: 200px;">
  </div>

  <h2 style="color: #4CAF50;">Thank you for your interest in Jaide!</h2>

  <p>Dear {{ first_name }},</p>

  <p>Thank you for reaching out to us. We have received your contact form submission and our team will review your request shortly.</p>

  <div style="background: #f8f9fa; padding: 20px; border-radius: 8px; margin: 20px 0;">
    <h3 style="margin-top: 0; color: #333;">What happens next?</h3>
    <ul style="line-height: 1.6;">
      <li>Our team will review your request within 24 hours</li>
      <li>A member of our team will contact you to discuss your needs</li>
      <li>We can schedule a personalized demo of jaide's AI solutions</li>
    </ul>
  </div>

  <p>In the meantime, you can book a demo slot directly using the link below:</p>

  <div style="text-align: center; margin: 30px 0;">
    <a href="{{ demo_url }}"
       style="background: #4CAF50; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; font-weight: bold;">
      Book a Demo
    </a>
  </div>

  <p>If you have any urgent questions, feel free to contact us directly at <a href="mailto:{{ support_address }}">{{ support_address }}</a>.</p>

  <p>Best regards,<br>The Jaide Team</p>

  <div style="margin-top: 40px; padding-top: 20px; border-top: 1px solid #eee; color: #666; font-size: 12px;">
    <p>This is an automated confirmation email. Please do not reply to this email.</p>
    <p>Jaide - AI that cares | <a href="{{ site_url }}">jaide.care</a></p>
  </div>
</div>
"""


@dataclass(frozen=True)
class EmailMessage:
    """Composed email ready for delivery"""
    sender: str
    recipient: str
    subject: str
    html: str
    text: str = ''


class EmailComposer:
    """
    Builds the two emails sent for every accepted submission

    Composition performs no I/O. The clock is injectable so the timestamp
    in the operator footer is deterministic under test.
    """

    def __init__(self,
                 sender: Optional[str],
                 operator_address: str,
                 clock: Optional[Callable[[], datetime]] = None):
        """
        Args:
            sender: From address placed on both messages
            operator_address: Recipient of the team notification
            clock: Callable returning the current time (defaults to datetime.now)
        """
        self.sender = sender or ''
        self.operator_address = operator_address
        self.clock = clock or datetime.now

        self.env = Environment(
            autoescape=select_autoescape(['html', 'xml']),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters['email_safe'] = self._email_safe_filter

        self._team_template = self.env.from_string(TEAM_NOTIFICATION_TEMPLATE)
        self._user_template = self.env.from_string(USER_CONFIRMATION_TEMPLATE)

    def compose(self, submission: NormalizedSubmission) -> Tuple[EmailMessage, EmailMessage]:
        """
        Compose the team notification and user confirmation

        Args:
            submission: Validated submission

        Returns:
            Tuple of (team_notification, user_confirmation)
        """
        try:
            team_html = self._team_template.render(
                first_name=submission.first_name,
                last_name=submission.last_name,
                email=submission.email,
                job_title=submission.job_title,
                institution=submission.institution,
                message=submission.message,
                submitted_at=self.clock().strftime(TIMESTAMP_FORMAT),
            )
            user_html = self._user_template.render(
                first_name=submission.first_name,
                logo_url=LOGO_URL,
                demo_url=DEMO_BOOKING_URL,
                support_address=SUPPORT_ADDRESS,
                site_url=SITE_URL,
            )
        except TemplateError as e:
            logger.error(f"Email template rendering failed: {e}", exc_info=True)
            raise

        team = EmailMessage(
            sender=self.sender,
            recipient=self.operator_address,
            subject=f"New Contact Form Submission from {submission.full_name}",
            html=team_html,
            text=html_to_text(team_html),
        )
        user = EmailMessage(
            sender=self.sender,
            recipient=submission.email,
            subject=USER_CONFIRMATION_SUBJECT,
            html=user_html,
            text=html_to_text(user_html),
        )
        return team, user

    @staticmethod
    def _email_safe_filter(value) -> Markup:
        """Escape submitted text and turn its newlines into <br>"""
        if not isinstance(value, str):
            value = str(value)

        value = html.escape(value)
        value = value.replace('\r\n', '\n').replace('\n', '<br>')

        return Markup(value)


def html_to_text(html_content: str) -> str:
    """
    Convert HTML to plain text with proper formatting for email
    """
    if not html_content:
        return ""

    soup = BeautifulSoup(html_content, 'html.parser')

    for br in soup.find_all('br'):
        br.replace_with('\n')

    for p in soup.find_all('p'):
        p.insert_after('\n\n')

    for header in soup.find_all(['h1', 'h2', 'h3', 'h4', 'h5', 'h6']):
        header.insert_before('\n')
        header.insert_after('\n')

    for li in soup.find_all('li'):
        li.insert_before('- ')
        li.insert_after('\n')

    for link in soup.find_all('a', href=True):
        link_text = link.get_text().strip()
        href = link['href']
        if href != link_text and not href.startswith('mailto:'):
            link.replace_with(f"{link_text} ({href})")

    text = soup.get_text()

    text = re.sub(r'[ \t]+', ' ', text)
    text = re.sub(r'\n[ \t]+', '\n', text)
    text = re.sub(r'\n\s*\n', '\n\n', text)
    return text.strip()
