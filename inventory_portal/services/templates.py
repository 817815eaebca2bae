"""
Reminder email rendering.

Administrators can override the subject, text body and HTML body from the
portal settings. Placeholders use the ``{{ name }}`` syntax; unknown names
render as an empty string. When a slot is empty the built-in French copy is
used as-is.

Values injected into the built-in HTML are escaped. Custom templates are
rendered raw: their authors are trusted administrators.
"""

import html
import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from ..models import AppSettings

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")

TEAMS_CHAT_URL = "https://teams.microsoft.com/l/chat/0/0?users={email}"


@dataclass
class ReminderContext:
    """Values available to reminder templates."""
    organization_name: str
    remaining_count: int
    total_count: int
    support_contact_email: str | None = None

    @property
    def support_contact_line(self) -> str:
        if self.support_contact_email:
            return (
                "Pour de l'assistance, joignez-nous via MS Teams: "
                f"{self.support_contact_email}."
            )
        return "Pour de l'assistance, utilisez le lien MS Teams de votre organisation."

    def placeholders(self) -> dict[str, Any]:
        return {
            "organization_name": self.organization_name,
            "remaining_count": self.remaining_count,
            "total_count": self.total_count,
            "support_contact_email": self.support_contact_email or "",
            "support_contact_line": self.support_contact_line,
        }


@dataclass
class RenderedEmail:
    subject: str
    text_body: str
    html_body: str


def render_template(
    template: str | None,
    fallback: str,
    values: dict[str, Any],
) -> str:
    """Substitute ``{{name}}`` placeholders, or return ``fallback`` verbatim."""
    if template is None or not template.strip():
        return fallback

    def _replace(match: re.Match[str]) -> str:
        value = values.get(match.group(1))
        return "" if value is None else str(value)

    return PLACEHOLDER_PATTERN.sub(_replace, template)


def escape_html(value: Any) -> str:
    """Escape ``& < > " '`` for safe inclusion in HTML text and attributes."""
    return html.escape(str(value), quote=True)


# =============================================================================
# BUILT-IN COPY
# =============================================================================


def default_subject(context: ReminderContext) -> str:
    return f"Relance - Inventaire {context.organization_name} en cours de validation"


def default_text_body(context: ReminderContext) -> str:
    return "\r\n".join([
        "Bonjour,",
        "",
        f"L'inventaire de l'organisation {context.organization_name} est toujours en cours de validation.",
        f"Il reste {context.remaining_count} éléments sur {context.total_count} éléments à valider.",
        "",
        context.support_contact_line,
        "",
        "Merci.",
    ])


def default_html_body(context: ReminderContext) -> str:
    organization_name = escape_html(context.organization_name)
    remaining = escape_html(context.remaining_count)
    total = escape_html(context.total_count)

    if context.support_contact_email:
        contact = escape_html(context.support_contact_email)
        teams_url = escape_html(
            TEAMS_CHAT_URL.format(email=quote(context.support_contact_email, safe="@"))
        )
        support_block = f"""
        <p style="margin: 0 0 16px 0;">Pour de l'assistance, joignez-nous via MS Teams: {contact}.</p>
        <div style="margin-top: 24px;">
            <a href="{teams_url}" style="display: inline-block; background-color: #0D5CAB; color: white;
                              padding: 12px 24px; text-decoration: none; border-radius: 6px; font-weight: 500;">
                Contacter le soutien
            </a>
        </div>"""
    else:
        support_block = """
        <div style="background-color: #F3F4F6; padding: 16px; border-radius: 8px; margin: 20px 0;">
            Pour de l'assistance, utilisez le lien MS Teams de votre organisation.
        </div>"""

    return f"""<!DOCTYPE html>
<html lang="fr">
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif;
             line-height: 1.6; color: #374151; max-width: 600px; margin: 0 auto; padding: 20px;">

    <div style="background-color: #0D5CAB; color: white; padding: 16px; border-radius: 8px 8px 0 0;">
        <h1 style="margin: 0; font-size: 18px;">Inventaire en cours de validation</h1>
    </div>

    <div style="border: 1px solid #E5E7EB; border-top: none; padding: 24px; border-radius: 0 0 8px 8px;">
        <p>Bonjour,</p>

        <p>L'inventaire de l'organisation <strong>{organization_name}</strong> est toujours en cours de validation.</p>

        <div style="background-color: #F9FAFB; padding: 16px; border-radius: 8px; margin: 20px 0;">
            <p style="margin: 0; font-size: 16px; color: #111827;">
                Il reste <strong>{remaining}</strong> éléments sur <strong>{total}</strong> éléments à valider.
            </p>
        </div>
{support_block}

        <hr style="border: none; border-top: 1px solid #E5E7EB; margin: 24px 0;">

        <p style="color: #9CA3AF; font-size: 12px;">Merci.</p>
    </div>
</body>
</html>
"""


def build_reminder_email(
    app_settings: AppSettings | None,
    context: ReminderContext,
) -> RenderedEmail:
    """Render the three reminder slots from admin templates or built-in copy."""
    values = context.placeholders()
    subject_template = app_settings.reminder_email_subject_template if app_settings else None
    text_template = app_settings.reminder_email_text_template if app_settings else None
    html_template = app_settings.reminder_email_html_template if app_settings else None

    return RenderedEmail(
        subject=render_template(subject_template, default_subject(context), values),
        text_body=render_template(text_template, default_text_body(context), values),
        html_body=render_template(html_template, default_html_body(context), values),
    )
