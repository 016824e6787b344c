"""
Client status messages.

One short text per job status, rendered from a Jinja2 template and addressed
to the last 10 digits of the client's mobile number. Nothing is sent from
here; callers hand `StatusMessage.link` to whatever opens the chat.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
from urllib.parse import quote

from jinja2 import Environment, FileSystemLoader

from ...constants import MESSAGE_COUNTRY_CODE, SHOP_NAME, SHOP_SIGNATURE
from ...database.repositories.clients_repo import Client
from ...database.repositories.jobs_repo import Job
from ...utils.helpers import fmt_money
from ...utils.validators import normalize_mobile

STATUS_MESSAGE_TEMPLATE = "resources/templates/messages/job_status.txt"


@dataclass(frozen=True)
class StatusMessage:
    recipient: str
    text: str

    @property
    def link(self) -> str:
        return f"https://wa.me/{MESSAGE_COUNTRY_CODE}{self.recipient}?text={quote(self.text)}"


def _message_env(template_dir: Optional[Union[str, Path]] = None) -> Environment:
    package_root = Path(__file__).resolve().parent.parent.parent
    env = Environment(
        loader=FileSystemLoader(str(Path(template_dir) if template_dir else package_root)),
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["money"] = fmt_money
    return env


def status_message(
    job: Job,
    client: Client,
    *,
    shop_name: str = SHOP_NAME,
    signature: str = SHOP_SIGNATURE,
    template_dir: Optional[Union[str, Path]] = None,
) -> StatusMessage:
    """Raises ValidationError when the client has no usable mobile number."""
    recipient = normalize_mobile(client.mobile)[-10:]
    text = _message_env(template_dir).get_template(STATUS_MESSAGE_TEMPLATE).render(
        job=job, client_name=client.name, shop_name=shop_name, signature=signature,
    )
    return StatusMessage(recipient=recipient, text=text.strip())
