"""
Webhook ingestion: signature checks, de-duplication and dispatch of provider
events onto the contract and identity state machines.
"""
import hashlib
import hmac
import json
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session, sessionmaker

from origination.core.config import ProvidersConfig
from origination.external.providers.funder import FunderClient
from origination.external.providers.kyc import IdentityVerifierClient
from origination.external.providers.signer import SignerClient
from origination.schemas.chat import InboundMessage
from origination.services.contracts import ContractService
from origination.services.identity import IdentityService
from origination.utils.exceptions import InvalidPayloadError, WebhookAuthError
from origination.utils.helpers import mask_phone, safe_get, sanitize_input
from origination.utils.logging import get_logger

logger = get_logger(__name__)

SIGNATURE_PREFIX = "sha256="

SIGNER = "signer"
FUNDER = "funder"
KYC = "kyc"

# Header carrying the HMAC for each provider
SIGNATURE_HEADERS = {
    SIGNER: "Content-Hmac",
    FUNDER: "X-Funder-Signature",
    KYC: "X-Kyc-Signature",
}

CHAT_UPSERT_EVENT = "messages.upsert"
GROUP_SUFFIX = "@g.us"
USER_SUFFIX = "@s.whatsapp.net"


def verify_signature(raw_body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """
    Check a hex HMAC-SHA256 of the raw body in constant time.
    An empty secret disables the check (development mode).
    """
    if not secret:
        return True
    if not signature:
        return False
    provided = signature.strip()
    if provided.startswith(SIGNATURE_PREFIX):
        provided = provided[len(SIGNATURE_PREFIX):]
    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(provided.lower(), expected)


class IdempotencyCache:
    """
    Bounded set of recently seen keys with a time-to-live.
    Safe to share between request handlers and background tasks.
    """

    def __init__(self, ttl_seconds: float, max_entries: int, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._seen: "OrderedDict[str, float]" = OrderedDict()
        self._lock = threading.Lock()

    def _evict(self, now: float) -> None:
        while self._seen:
            if now - next(iter(self._seen.values())) <= self.ttl:
                break
            self._seen.popitem(last=False)
        while len(self._seen) > self.max_entries:
            self._seen.popitem(last=False)

    def check_and_mark(self, key: str) -> bool:
        """True if the key was already seen; otherwise records it and returns False"""
        with self._lock:
            now = self._clock()
            self._evict(now)
            if key in self._seen:
                return True
            self._seen[key] = now
            self._evict(now)
            return False

    def discard(self, key: str) -> None:
        """Forget a key so a redelivery is processed again"""
        with self._lock:
            self._seen.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)


class WebhookService:
    """
    Verifies, de-duplicates and dispatches provider webhooks.
    Each delivery runs with its own database session.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        cache: IdempotencyCache,
        providers: ProvidersConfig,
        signer: Optional[SignerClient] = None,
        funder: Optional[FunderClient] = None,
        verifier: Optional[IdentityVerifierClient] = None,
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.providers = providers
        self.signer = signer
        self.funder = funder
        self.verifier = verifier

    @staticmethod
    def _parse(provider: str, payload: Any):
        """Returns (event, idempotency key), or (None, None) when the payload is not a valid event"""
        if provider == SIGNER:
            event = SignerClient.parse_webhook(payload)
            key = event and f"{SIGNER}:{event.document_key}:{event.name}"
        elif provider == FUNDER:
            event = FunderClient.parse_webhook(payload)
            key = event and f"{FUNDER}:{event.key}:{event.status}"
        elif provider == KYC:
            event = IdentityVerifierClient.parse_webhook(payload)
            key = event and f"{KYC}:{event.session_id}:{event.status}"
        else:
            raise InvalidPayloadError(detail=f"Unknown provider '{provider}'")
        return event, key

    async def handle(self, provider: str, raw_body: bytes, signature: Optional[str]) -> Dict[str, bool]:
        """
        Process one delivery.

        Raises:
            WebhookAuthError: Signature mismatch (nothing is processed)
            InvalidPayloadError: Unknown/disabled provider or unparseable body
        """
        config = getattr(self.providers, provider, None)
        if config is None or not config.enabled:
            raise InvalidPayloadError(detail=f"Provider '{provider}' is not enabled")

        if not verify_signature(raw_body, signature, config.webhook_secret):
            logger.warning(f"[yellow]⚠️  {provider} webhook: invalid signature[/yellow]")
            raise WebhookAuthError()

        try:
            payload = json.loads(raw_body or b"null")
        except ValueError as e:
            raise InvalidPayloadError(detail="Invalid webhook payload") from e

        event, key = self._parse(provider, payload)
        if event is None:
            raise InvalidPayloadError(detail="Invalid webhook payload")

        if self.cache.check_and_mark(key):
            logger.info(f"[dim]Duplicate webhook ignored: {key}[/dim]")
            return {"received": True, "duplicate": True}

        logger.info(f"[cyan]📨 Webhook received:[/cyan] {key}")
        try:
            await self._dispatch(provider, event, raw_body)
        except Exception:
            # Let the provider's retry be processed
            self.cache.discard(key)
            raise

        return {"received": True, "duplicate": False}

    async def _dispatch(self, provider: str, event, raw_body: bytes) -> None:
        db: Session = self.session_factory()
        try:
            if provider == SIGNER:
                contracts = ContractService(db, signer=self.signer, funder=self.funder)
                await contracts.handle_signer_event(event, hashlib.sha256(raw_body).hexdigest())
            elif provider == FUNDER:
                ContractService(db, signer=self.signer, funder=self.funder).handle_funding_event(event)
            else:
                IdentityService(db, verifier=self.verifier).handle_event(event)
        finally:
            db.close()


def parse_chat_event(payload: Dict[str, Any], max_length: int) -> Optional[InboundMessage]:
    """
    Turn a gateway `messages.upsert` event into an inbound message.
    Returns None for other events, our own messages, group chats and
    message kinds that carry nothing to answer.
    """
    if not isinstance(payload, dict) or payload.get("event") != CHAT_UPSERT_EVENT:
        return None

    key = safe_get(payload, "data", "key", default={})
    remote_jid = str(key.get("remoteJid") or "")
    if key.get("fromMe") or not remote_jid or remote_jid.endswith(GROUP_SUFFIX):
        return None

    message = safe_get(payload, "data", "message", default={})
    text, media_url, media_type = None, None, None
    if message.get("conversation"):
        text = message["conversation"]
    elif safe_get(message, "extendedTextMessage", "text"):
        text = message["extendedTextMessage"]["text"]
    elif safe_get(message, "buttonsResponseMessage", "selectedButtonId"):
        text = message["buttonsResponseMessage"]["selectedButtonId"]
    elif safe_get(message, "listResponseMessage", "singleSelectReply", "selectedRowId"):
        text = message["listResponseMessage"]["singleSelectReply"]["selectedRowId"]
    elif isinstance(message.get("imageMessage"), dict):
        image = message["imageMessage"]
        text = image.get("caption") or "[image]"
        media_url, media_type = image.get("url"), image.get("mimetype")
    elif isinstance(message.get("documentMessage"), dict):
        document = message["documentMessage"]
        text = f"[document: {document.get('fileName', '')}]"
        media_url, media_type = document.get("url"), document.get("mimetype")

    if text is None:
        logger.debug(f"[dim]Unhandled message type {safe_get(payload, 'data', 'messageType')}[/dim]")
        return None

    phone = remote_jid.replace(USER_SUFFIX, "")
    inbound = InboundMessage(
        phone=phone,
        text=sanitize_input(str(text), max_length),
        name=safe_get(payload, "data", "pushName"),
        media_url=media_url,
        media_type=media_type,
        external_id=key.get("id"),
    )
    logger.info(f"[cyan]💬 Incoming message[/cyan] from {mask_phone(phone)}")
    return inbound
