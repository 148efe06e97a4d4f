"""HMAC-signed, expiring download links.

A link names one asset for one user and order and carries its own expiry,
so nothing is stored server side. Links cannot be revoked before they
expire.
"""
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from urllib.parse import urlencode

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from storefront.errors import ExpiredLinkError, MalformedLinkError, SignatureError

logger = logging.getLogger(__name__)

QUERY_FIELDS = ("asset", "user", "order", "expires", "sig")


@dataclass(frozen=True)
class SignedDownload:
    asset_id: int
    user_id: int
    order_id: int
    expires_ms: int
    signature: str

    def query(self) -> dict:
        return {
            "asset": self.asset_id,
            "user": self.user_id,
            "order": self.order_id,
            "expires": self.expires_ms,
            "sig": self.signature,
        }

    def url(self, base_url: str) -> str:
        return f"{base_url}/downloads/file?{urlencode(self.query())}"


class DownloadSigner:
    def __init__(self, secret, default_ttl=24 * 60 * 60, clock=None):
        if not secret:
            logger.error("Download signing secret missing")
            raise ImproperlyConfigured("DOWNLOAD_SIGNING_SECRET (or SECRET_KEY) is required to sign downloads")
        self.secret = secret.encode("utf-8") if isinstance(secret, str) else secret
        self.default_ttl = default_ttl
        self.clock = clock or time.time

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _sign(self, asset_id, user_id, order_id, expires_ms) -> str:
        message = f"{asset_id}:{user_id}:{order_id}:{expires_ms}".encode("utf-8")
        return hmac.new(self.secret, message, hashlib.sha256).hexdigest()

    def issue(self, asset_id, user_id, order_id, ttl=None) -> SignedDownload:
        ttl = self.default_ttl if ttl is None else ttl
        expires_ms = self._now_ms() + int(ttl * 1000)
        return SignedDownload(
            asset_id=int(asset_id),
            user_id=int(user_id),
            order_id=int(order_id),
            expires_ms=expires_ms,
            signature=self._sign(int(asset_id), int(user_id), int(order_id), expires_ms),
        )

    def _authentic(self, asset_id, user_id, order_id, expires_ms, signature) -> bool:
        expected = self._sign(asset_id, user_id, order_id, expires_ms)
        # Bytes: compare_digest refuses non-ASCII str
        received = str(signature).encode("utf-8", "surrogatepass")
        return hmac.compare_digest(expected.encode("ascii"), received)

    def verify(self, asset_id, user_id, order_id, expires_ms, signature) -> bool:
        """True only for an authentic link that has not expired."""
        if any(v in (None, "") for v in (asset_id, user_id, order_id, expires_ms, signature)):
            return False
        try:
            fields = (int(asset_id), int(user_id), int(order_id), int(expires_ms))
        except (TypeError, ValueError):
            return False
        if not self._authentic(*fields, signature):
            return False
        return self._now_ms() <= fields[3]

    def check(self, query) -> SignedDownload:
        """Validate the query string of a download link.

        Raises a :class:`~storefront.errors.DownloadLinkError` subclass; all
        of them share one message.
        """
        values = [query.get(name) for name in QUERY_FIELDS]
        if any(not v for v in values):
            raise MalformedLinkError()
        try:
            asset_id, user_id, order_id, expires_ms = (int(v) for v in values[:4])
        except (TypeError, ValueError):
            raise MalformedLinkError()
        signature = values[4]
        if not self._authentic(asset_id, user_id, order_id, expires_ms, signature):
            raise SignatureError()
        if self._now_ms() > expires_ms:
            raise ExpiredLinkError()
        return SignedDownload(asset_id, user_id, order_id, expires_ms, signature)


def get_signer() -> DownloadSigner:
    return DownloadSigner(
        getattr(settings, "DOWNLOAD_SIGNING_SECRET", "") or settings.SECRET_KEY,
        default_ttl=settings.DOWNLOAD_LINK_TTL_SECONDS,
    )
