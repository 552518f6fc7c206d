import logging
from typing import Any, Callable, Dict, Iterator, Optional

import requests
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, StreamingResponse

from .action import ActionRequest
from .analytics import record_event
from .conditions import (
    Comparator,
    ConditionError,
    WalletCondition,
    iter_leaves,
    narrow_to_time_lock,
    time_lock,
    to_unified,
)
from .config import APP_NAME, Settings, get_settings, validate_config
from .envelope import Envelope, EnvelopeError, decode
from .frame import cast_action, cast_form, render_frame
from .keys import Signer, get_signer
from .logging_config import configure_logging, events, set_request_id
from .metadata import build_message_document, build_token_metadata, encode_token_data
from .models import CapsuleRequest, CapsuleResponse, CapsuleResult
from .network import KeyNetwork, NetworkError, build_network, session_resources
from .obfuscation import protected_url, verify_reference
from .pinning import GatewayClient, PinataClient, PinningError
from .session import SessionManager
from .util import canonicalize, ms_to_epoch, now_ms

logger = logging.getLogger(__name__)

app = FastAPI(title=APP_NAME)

NOT_FOUND_DESCRIPTION = "Message Not Found, maybe you're in the wrong Universe!"
PROXY_CHUNK_SIZE = 64 * 1024

NetworkFactory = Callable[[Signer], KeyNetwork]


# ============================================================
# Dependencies (overridden in tests)
# ============================================================

def provide_signer(settings: Settings = Depends(get_settings)) -> Signer:
    try:
        return get_signer(settings.api_key)
    except ValueError as exc:
        logger.error("Service wallet unavailable: %s", exc)
        raise HTTPException(500, "SERVER_WALLET_NOT_CONFIGURED")


def provide_network_factory(settings: Settings = Depends(get_settings)) -> NetworkFactory:
    return lambda signer: build_network(settings, signer)


def provide_pinata(settings: Settings = Depends(get_settings)) -> PinataClient:
    return PinataClient(settings.pinata_jwt, timeout=settings.http_timeout)


def provide_gateway(settings: Settings = Depends(get_settings)) -> GatewayClient:
    return GatewayClient(
        public_gateway=settings.ipfs_gateway_url,
        pinata_gateway=settings.pinata_gateway,
        pinata_token=settings.pinata_token,
        timeout=settings.http_timeout,
    )


def provide_analytics_http() -> Optional[requests.Session]:
    return None


@app.on_event("startup")
def _startup():
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)
    missing = [name for name, ok in validate_config(settings).items() if not ok]
    if missing:
        logger.warning("Integrations not configured: %s", ", ".join(missing))


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = set_request_id(request.headers.get("X-Request-ID"))
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


def _not_found() -> JSONResponse:
    return JSONResponse({"description": NOT_FOUND_DESCRIPTION}, status_code=404)


def _error(message: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


# ============================================================
# Capsule creation
# ============================================================

@app.get("/request")
def server_identity(signer: Signer = Depends(provide_signer)):
    return {"address": signer.address}


def _validate_capsule(req: CapsuleRequest, settings: Settings) -> Envelope:
    envelope = decode(req.message)
    predicate = envelope.predicate()
    if predicate is None:
        raise ConditionError("message has no access conditions")
    unlock = narrow_to_time_lock(predicate)
    if unlock.comparator != Comparator.GTE:
        raise ConditionError(f"time condition must use '>=', got {unlock.comparator.value!r}")
    for leaf in iter_leaves(predicate):
        if isinstance(leaf, WalletCondition) and leaf.comparator != Comparator.EQ:
            raise ConditionError(f"wallet condition must use '=', got {leaf.comparator.value!r}")
    if unlock.chain != settings.chain:
        raise ConditionError(f"time condition must be evaluated on {settings.chain}")
    if req.date is not None and ms_to_epoch(req.date) != unlock.unlock_at:
        raise ConditionError("date does not match the unlock time of the conditions")
    return envelope


def _pin_documents(
    out: Dict[str, Any],
    message: list,
    date_ms: int,
    image_url: str,
    settings: Settings,
    signer: Signer,
    pinata: PinataClient,
    gateway: GatewayClient
) -> None:
    """Pin the message document and token metadata into ``out``; stops at the first failure."""
    send_date = now_ms()

    doc = build_message_document(message, date_ms, send_date, image_url)
    out["messageJsonUrl"] = gateway.ipfs_url(pinata.pin_json(doc)["IpfsHash"])
    out["external_url"] = protected_url(out["messageJsonUrl"], settings.public_base_url, settings.url_salt)

    meta = build_token_metadata(message, date_ms, send_date, image_url, out["external_url"])
    json_url = gateway.ipfs_url(pinata.pin_json(meta)["IpfsHash"])
    out["jsonUrl"] = json_url
    out["jsonData"] = encode_token_data(json_url)
    out["jsonSignature"] = signer.sign_message(json_url)


@app.post("/request")
def request_capsule(
    req: CapsuleRequest,
    settings: Settings = Depends(get_settings),
    signer: Signer = Depends(provide_signer),
    network_factory: NetworkFactory = Depends(provide_network_factory),
    pinata: PinataClient = Depends(provide_pinata),
    gateway: GatewayClient = Depends(provide_gateway)
):
    try:
        envelope = _validate_capsule(req, settings)
    except (EnvelopeError, ConditionError) as exc:
        return _error(str(exc), 400)

    predicate = envelope.predicate()
    unlock_at = narrow_to_time_lock(predicate).unlock_at
    date_ms = req.date if req.date is not None else unlock_at * 1000
    events.capsule_requested(req.address, unlock_at, len(list(iter_leaves(predicate))))

    try:
        with network_factory(signer) as network:
            config = network.encrypt(canonicalize(settings.openai_config()), envelope.conditions_list())
            resources = session_resources(network, [envelope, config], execute=True)
            manager = SessionManager(network, signer, resources, ttl_seconds=settings.session_ttl_seconds)
            action = ActionRequest(data=envelope, config=config, public_key=signer.public_key)
            response = manager.run(lambda session: network.execute_action(action, session))
    except Exception as exc:
        logger.exception("Capsule request failed")
        return _error(str(exc) or type(exc).__name__)

    if not response.ok:
        events.action_failed(response.error or "no message returned")
        return _error(response.error or "remote action returned no message")
    events.action_completed(response.url)

    message = list(response.message)
    result: Dict[str, Any] = {"address": signer.address, "message": message, "date": date_ms}

    if response.url:
        try:
            result["pngUrl"] = gateway.ipfs_url(pinata.pin_url(response.url)["IpfsHash"])
        except PinningError as exc:
            events.pin_failed("image", str(exc))

    if result.get("pngUrl"):
        try:
            _pin_documents(result, message, date_ms, result["pngUrl"], settings, signer, pinata, gateway)
        except PinningError as exc:
            events.pin_failed("metadata", str(exc))

    events.capsule_assembled(result.get("jsonUrl"), result.get("external_url"))
    return CapsuleResponse(result=CapsuleResult(**result)).model_dump(exclude_none=True)


# ============================================================
# Reading
# ============================================================

def _document_envelope(doc: Dict[str, Any], chain: str) -> Envelope:
    """
    Public-read envelope for a pinned document.

    The predicate is always rebuilt as the time lock for ``date``; any
    conditions stored alongside the ciphertext are ignored, since the
    server session would satisfy their wallet leaf.
    """
    message = doc.get("message")
    if not isinstance(message, list) or len(message) not in (2, 3):
        raise EnvelopeError("document message must be [ciphertext, contentHash]")
    date = doc.get("date")
    if not isinstance(date, int) or isinstance(date, bool):
        raise EnvelopeError("document has no unlock date")
    return decode(message[:2], conditions=to_unified(time_lock(date, chain)))


def _fetch_document(cid: str, token: str, settings: Settings, gateway: GatewayClient) -> Optional[Dict[str, Any]]:
    if not verify_reference(cid, token, settings.ipfs_gateway_url, settings.url_salt):
        events.read_rejected(cid, "token mismatch")
        return None
    doc = gateway.fetch_json(gateway.ipfs_url(cid))
    if doc is None:
        events.read_rejected(cid, "document not found")
    return doc


@app.get("/read/{cid}/{token}")
def read_message(
    cid: str,
    token: str,
    settings: Settings = Depends(get_settings),
    signer: Signer = Depends(provide_signer),
    network_factory: NetworkFactory = Depends(provide_network_factory),
    gateway: GatewayClient = Depends(provide_gateway)
):
    doc = _fetch_document(cid, token, settings, gateway)
    if doc is None:
        return _not_found()
    doc.pop("publicMessage", None)

    try:
        envelope = _document_envelope(doc, settings.chain)
    except (EnvelopeError, ConditionError) as exc:
        events.message_locked(cid, f"malformed document: {exc}")
        return doc

    try:
        with network_factory(signer) as network:
            manager = SessionManager(network, signer, session_resources(network, [envelope]),
                                     ttl_seconds=settings.session_ttl_seconds)
            plaintext = manager.run(lambda session: network.decrypt(envelope, session))
    except NetworkError as exc:
        events.message_locked(cid, str(exc))
        return doc
    except (RuntimeError, ValueError) as exc:
        logger.error("Key network unavailable for read of %s: %s", cid, exc)
        events.message_locked(cid, "key network unavailable")
        return doc

    doc["publicMessage"] = plaintext.decode("utf-8")
    events.message_revealed(cid)
    return doc


# ============================================================
# Sharing
# ============================================================

def _frame(cid: str, token: str, request: Request, settings: Settings, gateway: GatewayClient,
           http: Optional[requests.Session]):
    record_event("Frame", "View", request.headers, settings.plausible_domain, url=str(request.url), http=http)
    if not verify_reference(cid, token, settings.ipfs_gateway_url, settings.url_salt):
        events.read_rejected(cid, "token mismatch")
        return _not_found()
    doc = gateway.fetch_json(gateway.ipfs_url(cid))
    page = render_frame(cid, token, settings.public_base_url, doc, fallback_image=gateway.ipfs_url(cid))
    return HTMLResponse(page)


@app.get("/frame/{cid}/{token}")
def frame_page(
    cid: str,
    token: str,
    request: Request,
    settings: Settings = Depends(get_settings),
    gateway: GatewayClient = Depends(provide_gateway),
    http: Optional[requests.Session] = Depends(provide_analytics_http)
):
    return _frame(cid, token, request, settings, gateway, http)


@app.get("/frame")
def frame_query(
    request: Request,
    a: Optional[str] = None,
    b: Optional[str] = None,
    settings: Settings = Depends(get_settings),
    gateway: GatewayClient = Depends(provide_gateway),
    http: Optional[requests.Session] = Depends(provide_analytics_http)
):
    if not a or not b:
        raise HTTPException(400, "Invalid path")
    return _frame(a, b, request, settings, gateway, http)


@app.get("/cast")
def cast_descriptor(
    request: Request,
    settings: Settings = Depends(get_settings),
    http: Optional[requests.Session] = Depends(provide_analytics_http)
):
    record_event("Castaction", "View", request.headers, settings.plausible_domain, url=str(request.url), http=http)
    return cast_action(settings.public_base_url)


@app.post("/cast")
def cast_submit(settings: Settings = Depends(get_settings)):
    return cast_form(settings.public_base_url)


def _iter_upstream(upstream: requests.Response) -> Iterator[bytes]:
    try:
        for chunk in upstream.iter_content(chunk_size=PROXY_CHUNK_SIZE):
            if chunk:
                yield chunk
    finally:
        upstream.close()


@app.get("/proxy/{path:path}")
def proxy(path: str, gateway: GatewayClient = Depends(provide_gateway)):
    try:
        upstream = gateway.open_stream(path)
    except PinningError as exc:
        logger.warning("Proxy fetch failed for %s: %s", path, exc)
        return PlainTextResponse("Failed to fetch resource", status_code=500)
    headers = {k: v for k, v in upstream.headers.items() if k.lower() == "content-type"}
    return StreamingResponse(_iter_upstream(upstream), headers=headers)


@app.get("/config")
def public_config(settings: Settings = Depends(get_settings)):
    return settings.public_config()
