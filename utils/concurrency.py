"""
Row locking helpers and the bounded retry policy for lock contention
"""
import logging
import time
from contextlib import contextmanager

from django.db import OperationalError

from utils.config import erp_setting
from utils.exceptions import Contention, NotFound

logger = logging.getLogger(__name__)


@contextmanager
def contention_guard(label=''):
    """Translate lock timeouts and deadlocks raised by the database into Contention"""
    try:
        yield
    except OperationalError as exc:
        logger.warning(f"Lock contention on {label or 'operation'}: {exc}")
        raise Contention(f"Could not lock {label or 'record'}, please retry") from exc


def lock_for_update(model, label=None, **lookup):
    """
    Fetch a single row with SELECT ... FOR UPDATE.
    Must be called inside transaction.atomic().
    """
    label = label or model._meta.verbose_name
    with contention_guard(label):
        try:
            return model.objects.select_for_update().get(**lookup)
        except model.DoesNotExist:
            raise NotFound(f"{label} not found")


def get_or_not_found(model, label=None, **lookup):
    """Plain read that raises NotFound instead of DoesNotExist"""
    try:
        return model.objects.get(**lookup)
    except model.DoesNotExist:
        raise NotFound(f"{label or model._meta.verbose_name} not found")


def retry_on_contention(func, *args, max_attempts=None, backoff=None, **kwargs):
    """
    Call ``func`` and retry with exponential backoff while it raises Contention.
    The last Contention is re-raised once attempts are exhausted.
    """
    max_attempts = max_attempts or erp_setting('CONTENTION_MAX_ATTEMPTS')
    backoff = erp_setting('CONTENTION_BACKOFF_SECONDS') if backoff is None else backoff

    attempt = 1
    while True:
        try:
            return func(*args, **kwargs)
        except Contention:
            if attempt >= max_attempts:
                logger.error(f"{getattr(func, '__name__', func)} still contended after {attempt} attempts")
                raise
            time.sleep(backoff * (2 ** (attempt - 1)))
            attempt += 1
