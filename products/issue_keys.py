"""
Issue key allocation.

Keys look like ``CRM-B001`` (product-scoped) or ``SUP-S042`` (the tenant-wide
pool used for client tickets that have not been triaged to a product yet).
Every key comes with a fresh opaque record id.

Sequence numbers are handed out by a single ``UPDATE ... SET next_num =
next_num + 1`` on the counter row, read back inside the same transaction.
The row lock taken by the update serializes concurrent allocators for the
same scope, and rolling back the surrounding transaction gives the number
back.
"""
import logging
import re
from typing import NamedTuple, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils.crypto import get_random_string

from trackdesk.exceptions import ConfigurationError, NotFoundError, ValidationError
from .models import GlobalTicketCounter, Product, ProductSequence

logger = logging.getLogger(__name__)

TYPE_CODES = {
    'epic': 'E',
    'feature': 'F',
    'task': 'T',
    'bug': 'B',
    'support': 'S',
    'feature_request': 'R',
    'spike': 'K',
    'note': 'N',
}

# The tenant-wide pool only takes client submissions
GLOBAL_TYPE_CODES = {
    'support': 'S',
    'feature_request': 'F',
}

VALID_TYPE_CODES = set(TYPE_CODES.values()) | set(GLOBAL_TYPE_CODES.values())

RECORD_ID_LENGTH = 12
RECORD_ID_CHARS = 'abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789'

ISSUE_KEY_RE = re.compile(r'^(?P<prefix>[A-Z0-9]+(?:-[A-Z0-9]+)*)-(?P<type_code>[A-Z])(?P<number>\d{3,})$')


class IssueKey(NamedTuple):
    id: str
    key: str


class ParsedIssueKey(NamedTuple):
    prefix: str
    type_code: str
    number: int


def generate_record_id():
    """Opaque, non-sequential primary key for tickets."""
    return get_random_string(RECORD_ID_LENGTH, RECORD_ID_CHARS)


def get_type_code(entity_kind, codes=TYPE_CODES):
    try:
        return codes[entity_kind]
    except KeyError:
        raise ValidationError(
            f"Invalid issue type: {entity_kind}. Valid types: {', '.join(codes)}",
            field='type',
        )


def format_issue_key(prefix, type_code, number):
    return f'{prefix}-{type_code}{number:03d}'


def _next_number(model, **scope):
    with transaction.atomic():
        counter, _ = model.objects.get_or_create(**scope)
        model.objects.filter(pk=counter.pk).update(next_num=F('next_num') + 1)
        counter.refresh_from_db(fields=['next_num'])
        return counter.next_num - 1


def allocate_product_scoped(product_id, entity_kind, tenant=None) -> IssueKey:
    """
    Allocate the next key for ``entity_kind`` in the product's own sequence.

    Raises:
        NotFoundError: the product does not exist (in ``tenant``, when given)
        ConfigurationError: the product has no issue-key code yet
        ValidationError: unknown entity kind
    """
    type_code = get_type_code(entity_kind)

    products = Product.objects.all()
    if tenant is not None:
        products = products.filter(tenant=tenant)
    product = products.filter(pk=product_id).first()

    if product is None:
        raise NotFoundError(f'Product not found: {product_id}')
    if not product.code:
        raise ConfigurationError(
            f'Product {product_id} has no code defined. '
            'Please set a product code before creating issues for it.',
            field='product_code',
        )

    number = _next_number(ProductSequence, product=product, issue_type=type_code)
    key = format_issue_key(product.code, type_code, number)
    logger.info(f'Allocated issue key {key} for product {product.pk}')
    return IssueKey(id=generate_record_id(), key=key)


def allocate_global_scoped(tenant, entity_kind) -> IssueKey:
    """Allocate the next key from the tenant-wide pool (client submissions)."""
    type_code = get_type_code(entity_kind, GLOBAL_TYPE_CODES)
    prefix = getattr(settings, 'GLOBAL_ISSUE_KEY_PREFIX', 'SUP')

    number = _next_number(GlobalTicketCounter, tenant=tenant, issue_type=type_code)
    key = format_issue_key(prefix, type_code, number)
    logger.info(f'Allocated global issue key {key} for tenant {tenant.pk}')
    return IssueKey(id=generate_record_id(), key=key)


def parse_issue_key(key) -> Optional[ParsedIssueKey]:
    """Split ``CRM-B001`` into ('CRM', 'B', 1). Returns None for malformed keys."""
    match = ISSUE_KEY_RE.match(key or '')
    if not match or match.group('type_code') not in VALID_TYPE_CODES:
        return None
    return ParsedIssueKey(
        prefix=match.group('prefix'),
        type_code=match.group('type_code'),
        number=int(match.group('number')),
    )


def is_valid_issue_key(key):
    return parse_issue_key(key) is not None
