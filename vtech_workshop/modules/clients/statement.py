from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ...constants import APP_NAME
from ...utils.helpers import fmt_money, today_str
from .ledger import Statement

_log = logging.getLogger(__name__)

STATEMENT_TEMPLATE_PATH = "resources/templates/statements/client_statement.html"

_STATEMENT_PDF_CSS = """
    @page {
        margin: 10mm;
        size: A4;
    }
    body {
        margin: 0 !important;
        padding: 0 !important;
    }
"""


def _template_env(template_dir: Optional[Union[str, Path]] = None) -> Environment:
    # resources/ lives at the package root, two levels above this module
    package_root = Path(__file__).resolve().parent.parent.parent
    search = Path(template_dir) if template_dir else package_root
    env = Environment(
        loader=FileSystemLoader(str(search)),
        autoescape=select_autoescape(["html"]),
    )
    env.filters["money"] = fmt_money
    return env


def render_statement_html(
    statement: Statement,
    *,
    shop_name: str = APP_NAME,
    template_dir: Optional[Union[str, Path]] = None,
    template_name: str = STATEMENT_TEMPLATE_PATH,
) -> str:
    """Render a client statement to a standalone HTML document."""
    template = _template_env(template_dir).get_template(template_name)
    return template.render(
        shop_name=shop_name,
        client=statement.client,
        date_from=statement.date_from,
        date_to=statement.date_to,
        generated_on=today_str(),
        opening_balance=statement.opening_balance,
        lines=statement.lines,
        total_debit=statement.total_debit,
        total_credit=statement.total_credit,
        closing_balance=statement.closing_balance,
    )


def render_statement_pdf(statement: Statement, out_path: Union[str, Path], **kwargs) -> Path:
    """
    Render the statement and write it as a PDF. WeasyPrint is an optional
    dependency (the `pdf` extra) and is only imported here.
    """
    from weasyprint import CSS, HTML

    html_content = render_statement_html(statement, **kwargs)
    target = Path(out_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    HTML(string=html_content).write_pdf(str(target), stylesheets=[CSS(string=_STATEMENT_PDF_CSS)])
    _log.info("statement for client %s written to %s", statement.client.client_id, target)
    return target
