# backend/booking_payments/services/template_service.py
"""
Template rendering for the customer-facing HTML pages.

The self-cancel link in booking emails lands on a page, not an API
client, so every outcome of that flow is rendered from a Jinja2 template
under ``templates/``.
"""

from datetime import datetime
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, TemplateNotFound
import pytz

from ..core.config import settings
from ..utils.time_utils import ensure_utc
from .base import BaseService

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"


class TemplateService:
    """
    Jinja2 rendering with the brand context every page needs.

    Holds no database session; one instance is shared per process.
    """

    def __init__(self, template_dir: Optional[Path] = None, timezone: Optional[str] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.template_dir = template_dir or TEMPLATE_DIR
        self.timezone = pytz.timezone(timezone or settings.booking_timezone)
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._register_custom_filters()

    def _register_custom_filters(self) -> None:
        def format_datetime(value: Any, format_str: str = "%A %d %B %Y at %-I:%M %p") -> str:
            if isinstance(value, str):
                return value
            # Stored as UTC, shown in the business timezone
            return ensure_utc(value).astimezone(self.timezone).strftime(format_str)

        self.env.filters["format_datetime"] = format_datetime

    def get_common_context(self, business_phone: Optional[str] = None) -> Dict[str, Any]:
        return {
            "brand_name": settings.brand_name,
            "business_phone": business_phone or settings.business_phone,
            "site_url": settings.site_url,
            "current_year": datetime.now().year,
        }

    @BaseService.measure_operation("render_template")
    def render_template(
        self, template_name: str, context: Optional[Dict[str, Any]] = None, **kwargs: Any
    ) -> str:
        """
        Render a template relative to the templates directory.

        ``business_phone`` in the context (the runtime setting) wins over the
        configured default.

        Raises:
            TemplateNotFound: If the template doesn't exist
        """
        full_context = self.get_common_context()
        if context:
            full_context.update(context)
        full_context.update(kwargs)
        if not full_context.get("business_phone"):
            full_context["business_phone"] = settings.business_phone

        try:
            template = self.env.get_template(template_name)
        except TemplateNotFound:
            self.logger.error(f"Template not found: {template_name}")
            raise
        return template.render(full_context)
