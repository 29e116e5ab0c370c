"""
Utility functions for attachment storage paths.
"""

import os
import re
from datetime import datetime
from django.utils.deconstruct import deconstructible


def sanitize_filename(filename):
    """
    Sanitize filename to remove characters object storage backends reject.

    Args:
        filename: Original filename

    Returns:
        Sanitized filename with only alphanumeric, underscore, dot, and dash
    """
    name, ext = os.path.splitext(os.path.basename(filename))
    safe_name = re.sub(r'[^a-zA-Z0-9_.-]', '_', name) or 'file'
    safe_ext = re.sub(r'[^a-zA-Z0-9.]', '', ext)
    return f"{safe_name}{safe_ext}"


@deconstructible
class TenantUploadTo:
    """
    Deconstructible upload_to callable that namespaces files per tenant.

    Files land under ``tenant_<id>/<base_path>/YYYY/MM/DD/<name>`` so one
    bucket can hold every tenant's attachments without collisions.
    """
    def __init__(self, base_path):
        self.base_path = base_path

    def __call__(self, instance, filename):
        safe_filename = sanitize_filename(filename)
        date_path = datetime.now().strftime('%Y/%m/%d')
        return f"tenant_{instance.tenant_id}/{self.base_path}/{date_path}/{safe_filename}"

    def __eq__(self, other):
        return isinstance(other, TenantUploadTo) and other.base_path == self.base_path


def tenant_upload_to(base_path):
    """
    Factory for the upload_to callable.

    Example:
        file = models.FileField(upload_to=tenant_upload_to('ticket_attachments'))
    """
    return TenantUploadTo(base_path)
