"""
Conversation orchestrator: the per-customer pipeline from inbound chat
message to dispatched reply
"""
import asyncio
import threading
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.orm import Session, sessionmaker

from origination.core.config import Settings, settings as default_settings
from origination.database.models import Customer
from origination.database.models.enums import MessageRole
from origination.database.session import atomic
from origination.external.chat.client import ChatGatewayClient
from origination.external.providers.funder import FunderClient
from origination.external.providers.kyc import IdentityVerifierClient
from origination.external.providers.signer import SignerClient
from origination.repositories.application_repository import ApplicationRepository
from origination.repositories.conversation_repository import ConversationRepository
from origination.repositories.customer_repository import CustomerRepository
from origination.schemas.chat import InboundMessage
from origination.services.agent import LoanAgent
from origination.services.capabilities import CapabilitySet
from origination.services.credit import BureauProvider
from origination.services.documents import DocumentService
from origination.services.llm_service import ReasoningService
from origination.services.pricing import PricingEngine
from origination.utils.helpers import mask_phone, normalize_phone
from origination.utils.logging import get_logger
from origination.utils.prompt_manager import APOLOGY_CATEGORY, PromptManager

logger = get_logger(__name__)

TECHNICAL_PROBLEM_REPLY = "Sorry, I'm having a technical problem right now. Could you try again in a moment?"

# Split points earlier than this share of the chunk are ignored
MIN_SPLIT_RATIO = 0.3

HISTORY_ROLES = {
    MessageRole.CUSTOMER.value: "user",
    MessageRole.ASSISTANT.value: "assistant",
}


class KeyedSerializer:
    """
    Runs coroutines one at a time per key, in arrival order.

    Each key maps to the most recent task and when it was queued. New work
    waits for that task to settle, whether it succeeded or failed. Entries
    older than the TTL are treated as settled so a stuck pipeline cannot block
    a customer forever. Process-scoped only.
    """

    def __init__(self, ttl_seconds: float = 120.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl_seconds
        self._clock = clock
        self._chains: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._chains)

    @staticmethod
    async def _after(previous: Optional[asyncio.Future], fn: Callable[[], Awaitable[Any]]) -> Any:
        if previous is not None:
            await asyncio.wait([previous])
        return await fn()

    def _release(self, key: str, entry: Dict[str, Any]) -> None:
        with self._lock:
            if self._chains.get(key) is entry:
                del self._chains[key]

    async def run(self, key: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        with self._lock:
            now = self._clock()
            previous = None
            current = self._chains.get(key)
            if current is not None and not current["task"].done():
                if now - current["created_at"] <= self.ttl:
                    previous = current["task"]
                else:
                    logger.warning(f"[yellow]⚠️  Pipeline for {mask_phone(key)} exceeded its lock TTL[/yellow]")
            task = asyncio.ensure_future(self._after(previous, fn))
            entry = {"task": task, "created_at": now}
            self._chains[key] = entry

        task.add_done_callback(lambda _: self._release(key, entry))
        return await task


def split_message(text: str, max_length: int = 4000) -> List[str]:
    """
    Split a reply into transport-sized chunks.

    Prefers paragraph breaks, then line breaks (only past 30% of the chunk),
    then the last space, then a hard cut.
    """
    if len(text) <= max_length:
        return [text]

    chunks: List[str] = []
    remaining = text
    min_split = int(max_length * MIN_SPLIT_RATIO)
    while len(remaining) > max_length:
        window = remaining[:max_length]
        cut = window.rfind("\n\n")
        if cut < min_split:
            cut = window.rfind("\n")
        if cut < min_split:
            cut = window.rfind(" ")
        if cut <= 0:
            cut = max_length
        chunks.append(remaining[:cut])
        remaining = remaining[cut:].lstrip()
    if remaining:
        chunks.append(remaining)
    return chunks


class ConversationOrchestrator:
    """
    Serializes and runs the pipeline for each inbound message:
    customer -> conversation -> persisted input -> history and context ->
    reasoning loop -> persisted reply -> chunked dispatch.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        reasoning: ReasoningService,
        chat: ChatGatewayClient,
        prompts: PromptManager,
        serializer: KeyedSerializer,
        bureau: BureauProvider,
        pricing: Optional[PricingEngine] = None,
        signer: Optional[SignerClient] = None,
        funder: Optional[FunderClient] = None,
        verifier: Optional[IdentityVerifierClient] = None,
        config: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.reasoning = reasoning
        self.chat = chat
        self.prompts = prompts
        self.serializer = serializer
        self.bureau = bureau
        self.config = config or default_settings
        self.pricing = pricing or PricingEngine(self.config.loan)
        self.signer = signer
        self.funder = funder
        self.verifier = verifier

    async def handle(self, message: InboundMessage) -> None:
        """Entry point for the chat webhook; never raises"""
        phone = normalize_phone(message.phone)
        try:
            await self.serializer.run(phone, lambda: self._guarded(phone, message))
        except Exception as e:
            logger.error(f"[red]❌ Could not schedule message {message.external_id} from {mask_phone(phone)}:[/red] {e!r}")

    async def _guarded(self, phone: str, message: InboundMessage) -> None:
        try:
            await self._process(phone, message)
        except Exception as e:
            logger.error(
                f"[red]❌ Pipeline failed[/red] for {mask_phone(phone)} "
                f"[dim](message {message.external_id})[/dim]: {e!r}"
            )
            await self._send_apology(phone)

    async def _process(self, phone: str, message: InboundMessage) -> None:
        db: Session = self.session_factory()
        try:
            customers = CustomerRepository(db)
            conversations = ConversationRepository(db)

            with atomic(db):
                customer = customers.upsert_by_phone(phone, message.name)
                conversation = conversations.get_or_create_active(customer.id)
                inbound = conversations.append_message(
                    conversation.id,
                    MessageRole.CUSTOMER,
                    message.text,
                    media_url=message.media_url,
                    media_type=message.media_type,
                    external_id=message.external_id,
                )

            history = [
                {"role": HISTORY_ROLES[m.role], "content": m.content}
                for m in conversations.recent_messages(
                    conversation.id, self.config.orchestrator.history_limit, exclude_id=inbound.id
                )
            ]
            context = self._context_digest(db, customer)

            agent = LoanAgent(
                reasoning=self.reasoning,
                capabilities=CapabilitySet(
                    db,
                    phone,
                    bureau=self.bureau,
                    pricing=self.pricing,
                    signer=self.signer,
                    funder=self.funder,
                    verifier=self.verifier,
                    loan_config=self.config.loan,
                    inbound_media_url=message.media_url,
                    inbound_media_type=message.media_type,
                ),
                policy=self.prompts.get_system_prompt(),
                max_iterations=self.config.llm.max_iterations,
                call_timeout=self.config.llm.call_timeout,
                empty_reply=self.prompts.get_text(APOLOGY_CATEGORY, "empty_reply", TECHNICAL_PROBLEM_REPLY),
                iteration_limit_reply=self.prompts.get_text(
                    APOLOGY_CATEGORY, "iteration_limit", TECHNICAL_PROBLEM_REPLY
                ),
            )
            reply = await agent.converse(message.text, history, context)

            with atomic(db):
                conversations.append_message(conversation.id, MessageRole.ASSISTANT, reply.text)
        finally:
            db.close()

        if reply.capabilities_used:
            logger.info(f"[dim]Capabilities used for {mask_phone(phone)}: {', '.join(reply.capabilities_used)}[/dim]")
        await self._send(phone, reply.text)

    def _context_digest(self, db: Session, customer: Customer) -> str:
        application = ApplicationRepository(db).active_for_customer(customer.id)
        missing = DocumentService(db).summary(customer)["missing"]

        if customer.has_consent:
            consent = "given"
        elif customer.consent_refused_at is not None:
            consent = "refused"
        else:
            consent = "not asked yet"

        lines = {
            "Name": customer.name or "unknown",
            "Stage": customer.stage,
            "Consent": consent,
            "Active application": (
                f"#{application.id} {application.status}, {application.requested_amount:.2f} "
                f"in {application.installments} installments"
                if application else "none"
            ),
            "Missing documents": ", ".join(m["label"] for m in missing) or "none",
        }
        return self.prompts.format_context(lines)

    async def _send(self, phone: str, text: str) -> None:
        chunks = split_message(text, self.config.chat.max_chunk_length)
        for index, chunk in enumerate(chunks):
            if index:
                await asyncio.sleep(self.config.chat.chunk_delay)
            await self.chat.send_text(phone, chunk)

    async def _send_apology(self, phone: str) -> None:
        try:
            text = self.prompts.get_text(APOLOGY_CATEGORY, "technical_problem", TECHNICAL_PROBLEM_REPLY)
        except KeyError:
            text = TECHNICAL_PROBLEM_REPLY
        try:
            await self.chat.send_text(phone, text)
        except Exception as e:
            logger.error(f"[red]❌ Could not deliver apology to {mask_phone(phone)}:[/red] {e!r}")
