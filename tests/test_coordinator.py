import asyncio
import dataclasses
from pathlib import Path

import pytest

from ailocator.backends.base import BackendResponse, SynthesisBackend
from ailocator.core.contracts import CacheStrategy, LocatorResult, ResolveOptions, ResolveRequest
from ailocator.core.coordinator import ResolutionCoordinator, build_cache_key
from ailocator.core.errors import ResolutionExhausted
from ailocator.core.locator_provider import LocatorProvider
from ailocator.core.locator_store import LocatorStore
from ailocator.core.page_document import LiveDocument

CONTEXT = "https://app.test/login"


class FakeDocument(LiveDocument):
    def __init__(self, matching: set[str] | None = None) -> None:
        self.matching = set(matching or ())
        self.checked: list[str] = []
        self.snapshots = 0

    async def exists(self, selector: str) -> bool:
        self.checked.append(selector)
        return selector in self.matching

    async def snapshot(self) -> str:
        self.snapshots += 1
        return f'<html><body><button id="login">Login</button><!-- {self.snapshots} --></body></html>'


class FakeBackend(SynthesisBackend):
    def __init__(self, reply: str, delay_seconds: float = 0.0) -> None:
        self.reply = reply
        self.delay_seconds = delay_seconds
        self.calls: list[tuple[str, str, bool]] = []

    async def synthesize(
        self,
        document_snippet: str,
        intent: str,
        origin_id: str = "unknown-url",
        wants_template: bool = False,
    ) -> BackendResponse:
        self.calls.append((intent, origin_id, wants_template))
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        return BackendResponse(selector=self.reply)


def _coordinator(tmp_path: Path, backend: SynthesisBackend, max_retries: int = 2) -> ResolutionCoordinator:
    return ResolutionCoordinator(
        provider=LocatorProvider(backend),
        store=LocatorStore(tmp_path / "cache.json"),
        max_retries=max_retries,
    )


def _request(description: str, **options) -> ResolveRequest:
    return ResolveRequest(context=CONTEXT, description=description, options=ResolveOptions(**options))


def test_build_cache_key() -> None:
    assert build_cache_key("https://a.test", "Login button") == "https://a.test::Login button"


def test_negative_max_retries_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        _coordinator(tmp_path, FakeBackend("#x"), max_retries=-1)


@pytest.mark.asyncio
async def test_end_to_end_cache_miss_resolves_and_persists(tmp_path: Path) -> None:
    backend = FakeBackend("#login|||//button")
    document = FakeDocument({"#login"})
    coordinator = _coordinator(tmp_path, backend)

    resolution = await coordinator.resolve(document, _request("Login button"))

    assert resolution.selector == "#login"
    assert resolution.source == "backend"
    assert resolution.result.best == "#login"
    assert resolution.result.alternates == ("//button",)
    assert resolution.cache_key == f"{CONTEXT}::Login button"
    assert backend.calls == [("Login button", CONTEXT, False)]

    reloaded = LocatorStore(tmp_path / "cache.json")
    stored = reloaded.get(f"{CONTEXT}::Login button")
    assert stored is not None
    assert stored.best == "#login"
    assert stored.is_template is False


@pytest.mark.asyncio
async def test_concurrent_identical_requests_share_one_backend_call(tmp_path: Path) -> None:
    backend = FakeBackend("#login", delay_seconds=0.02)
    document = FakeDocument({"#login"})
    coordinator = _coordinator(tmp_path, backend)

    results = await asyncio.gather(*(coordinator.resolve(document, _request("Login button")) for _ in range(5)))

    assert len(backend.calls) == 1
    assert {r.selector for r in results} == {"#login"}
    assert coordinator.pending_keys() == []


@pytest.mark.asyncio
async def test_coalesced_callers_apply_their_own_variables(tmp_path: Path) -> None:
    backend = FakeBackend("//button[@data-user='{user}']", delay_seconds=0.02)
    document = FakeDocument({"//button[@data-user='alice']", "//button[@data-user='bob']"})
    coordinator = _coordinator(tmp_path, backend)

    first, second = await asyncio.gather(
        coordinator.resolve(document, _request("Edit button for {user}", variables={"user": "alice"})),
        coordinator.resolve(document, _request("Edit button for {user}", variables={"user": "bob"})),
    )

    assert len(backend.calls) == 1
    assert first.selector == "//button[@data-user='alice']"
    assert second.selector == "//button[@data-user='bob']"
    assert first.result.best == second.result.best == "//button[@data-user='{user}']"


@pytest.mark.asyncio
async def test_failure_reaches_every_coalesced_caller_and_clears_inflight(tmp_path: Path) -> None:
    backend = FakeBackend("#nope", delay_seconds=0.01)
    coordinator = _coordinator(tmp_path, backend, max_retries=0)

    outcomes = await asyncio.gather(
        coordinator.resolve(FakeDocument(), _request("Ghost")),
        coordinator.resolve(FakeDocument(), _request("Ghost")),
        return_exceptions=True,
    )

    assert all(isinstance(outcome, ResolutionExhausted) for outcome in outcomes)
    assert len(backend.calls) == 1
    assert coordinator.pending_keys() == []


@pytest.mark.asyncio
async def test_cancelled_first_caller_does_not_cancel_waiters(tmp_path: Path) -> None:
    backend = FakeBackend("#login", delay_seconds=0.02)
    document = FakeDocument({"#login"})
    coordinator = _coordinator(tmp_path, backend)

    first = asyncio.create_task(coordinator.resolve(document, _request("Login button")))
    await asyncio.sleep(0)
    second = asyncio.create_task(coordinator.resolve(document, _request("Login button")))
    await asyncio.sleep(0)
    first.cancel()

    resolution = await second

    assert resolution.selector == "#login"
    assert len(backend.calls) == 1
    with pytest.raises(asyncio.CancelledError):
        await first
    assert coordinator.pending_keys() == []
    assert coordinator.cached(f"{CONTEXT}::Login button") is not None


@pytest.mark.asyncio
async def test_in_flight_entry_outlives_cancelled_first_caller(tmp_path: Path) -> None:
    backend = FakeBackend("#login", delay_seconds=0.02)
    document = FakeDocument({"#login"})
    coordinator = _coordinator(tmp_path, backend)

    first = asyncio.create_task(coordinator.resolve(document, _request("Login button")))
    await asyncio.sleep(0)
    first.cancel()
    with pytest.raises(asyncio.CancelledError):
        await first

    assert coordinator.pending_keys() == [f"{CONTEXT}::Login button"]
    resolution = await coordinator.resolve(document, _request("Login button"))

    assert resolution.selector == "#login"
    assert len(backend.calls) == 1


@pytest.mark.asyncio
async def test_returned_result_cannot_alter_cached_entries(tmp_path: Path) -> None:
    backend = FakeBackend("#login|||//button")
    document = FakeDocument({"#login"})
    coordinator = _coordinator(tmp_path, backend)
    key = f"{CONTEXT}::Login button"

    resolution = await coordinator.resolve(document, _request("Login button"))

    with pytest.raises(dataclasses.FrozenInstanceError):
        resolution.result.best = "#hijacked"
    with pytest.raises(AttributeError):
        resolution.result.alternates.append("#hijacked")
    assert coordinator.cached(key).best == "#login"
    assert coordinator.cached(key).alternates == ("//button",)
    assert coordinator.store.get(key).best == "#login"


@pytest.mark.asyncio
async def test_template_strategy_reuses_one_entry_for_many_values(tmp_path: Path) -> None:
    backend = FakeBackend("//button[@data-user='{user}']")
    users = ["alice", "bob", "carol"]
    document = FakeDocument({f"//button[@data-user='{user}']" for user in users})
    coordinator = _coordinator(tmp_path, backend)

    selectors = []
    for user in users:
        resolution = await coordinator.resolve(
            document,
            _request("Edit button for {user}", variables={"user": user}, cache_strategy=CacheStrategy.TEMPLATE),
        )
        selectors.append(resolution.selector)

    assert len(backend.calls) == 1
    assert backend.calls[0] == ("Edit button for {user}", CONTEXT, True)
    assert len(set(selectors)) == 3
    stored = coordinator.store.get(f"{CONTEXT}::Edit button for {{user}}")
    assert stored.best == "//button[@data-user='{user}']"
    assert stored.is_template is True


@pytest.mark.asyncio
async def test_resolved_strategy_keys_by_substituted_text(tmp_path: Path) -> None:
    backend = FakeBackend("#edit")
    document = FakeDocument({"#edit"})
    coordinator = _coordinator(tmp_path, backend)

    for user in ("alice", "bob"):
        resolution = await coordinator.resolve(
            document,
            _request("Edit button for {user}", variables={"user": user}, cache_strategy="resolved"),
        )
        assert resolution.cache_key == f"{CONTEXT}::Edit button for {user}"

    assert [call[0] for call in backend.calls] == ["Edit button for alice", "Edit button for bob"]
    assert all(call[2] is False for call in backend.calls)


@pytest.mark.asyncio
async def test_retry_bound_is_max_retries_plus_one(tmp_path: Path) -> None:
    backend = FakeBackend("#nope|||#also-nope")
    document = FakeDocument()
    coordinator = _coordinator(tmp_path, backend, max_retries=2)

    with pytest.raises(ResolutionExhausted) as exc_info:
        await coordinator.resolve(document, _request("Missing widget"))

    assert len(backend.calls) == 3
    assert document.snapshots == 3
    assert str(exc_info.value) == 'Unable to resolve locator for "Missing widget" after 3 attempts'
    assert exc_info.value.attempts == 3
    assert len(coordinator.store) == 0


@pytest.mark.asyncio
async def test_auto_heal_disabled_returns_stale_selector(tmp_path: Path) -> None:
    backend = FakeBackend("#new")
    coordinator = _coordinator(tmp_path, backend)
    coordinator.store.set(f"{CONTEXT}::Login button", LocatorResult(best="#old"))

    resolution = await coordinator.resolve(FakeDocument(), _request("Login button", auto_heal=False))

    assert resolution.selector == "#old"
    assert resolution.source == "store"
    assert backend.calls == []


@pytest.mark.asyncio
async def test_failing_cached_selector_is_healed_and_overwritten(tmp_path: Path) -> None:
    backend = FakeBackend("#new")
    coordinator = _coordinator(tmp_path, backend)
    key = f"{CONTEXT}::Login button"
    coordinator.store.set(key, LocatorResult(best="#old"))

    resolution = await coordinator.resolve(FakeDocument({"#new"}), _request("Login button"))

    assert resolution.selector == "#new"
    assert len(backend.calls) == 1
    assert coordinator.store.get(key).best == "#new"


@pytest.mark.asyncio
async def test_store_hit_is_promoted_to_memory(tmp_path: Path) -> None:
    backend = FakeBackend("#unused")
    coordinator = _coordinator(tmp_path, backend)
    key = f"{CONTEXT}::Login button"
    coordinator.store.set(key, LocatorResult(best="#login"))
    document = FakeDocument({"#login"})

    first = await coordinator.resolve(document, _request("Login button"))
    second = await coordinator.resolve(document, _request("Login button"))

    assert first.source == "store"
    assert second.source == "memory"
    assert coordinator.cached(key).best == "#login"
    assert backend.calls == []


@pytest.mark.asyncio
async def test_always_ai_skips_cache_and_memory(tmp_path: Path) -> None:
    backend = FakeBackend("#fresh")
    coordinator = _coordinator(tmp_path, backend)
    key = f"{CONTEXT}::Login button"
    coordinator.store.set(key, LocatorResult(best="#login"))

    resolution = await coordinator.resolve(FakeDocument({"#login", "#fresh"}), _request("Login button", always_ai=True))

    assert resolution.selector == "#fresh"
    assert len(backend.calls) == 1
    assert coordinator.cached(key) is None
    assert coordinator.store.get(key).best == "#fresh"


@pytest.mark.asyncio
async def test_all_xpath_alternates_promote_top_ranked(tmp_path: Path) -> None:
    backend = FakeBackend("#missing|||//div[1]|||//button[@data-testid='submit']")
    document = FakeDocument({"//div[1]", "//button[@data-testid='submit']"})
    coordinator = _coordinator(tmp_path, backend)

    resolution = await coordinator.resolve(document, _request("Submit button"))

    assert resolution.selector == "//button[@data-testid='submit']"
    assert resolution.result.best == "//button[@data-testid='submit']"
    assert resolution.result.alternates == ("//div[1]",)


@pytest.mark.asyncio
async def test_top_ranked_failure_falls_back_to_listed_order(tmp_path: Path) -> None:
    backend = FakeBackend("#missing|||//div[1]|||//button[@data-testid='submit']")
    document = FakeDocument({"//div[1]"})
    coordinator = _coordinator(tmp_path, backend)

    resolution = await coordinator.resolve(document, _request("Submit button"))

    assert resolution.selector == "//div[1]"
    assert resolution.result.alternates == ("//div[1]", "//button[@data-testid='submit']")


@pytest.mark.asyncio
async def test_mixed_alternates_are_tried_in_order(tmp_path: Path) -> None:
    backend = FakeBackend("#missing|||.btn-primary|||//button[@data-testid='submit']")
    document = FakeDocument({".btn-primary", "//button[@data-testid='submit']"})
    coordinator = _coordinator(tmp_path, backend)

    resolution = await coordinator.resolve(document, _request("Submit button"))

    assert resolution.selector == ".btn-primary"
    assert resolution.result.best == ".btn-primary"
    assert resolution.result.alternates == (".btn-primary", "//button[@data-testid='submit']")


@pytest.mark.asyncio
async def test_winning_alternate_recomputes_template_flag(tmp_path: Path) -> None:
    backend = FakeBackend("#static|||[data-user='{user}']")
    document = FakeDocument({"[data-user='dana']"})
    coordinator = _coordinator(tmp_path, backend)

    resolution = await coordinator.resolve(document, _request("Row for {user}", variables={"user": "dana"}))

    assert resolution.selector == "[data-user='dana']"
    assert resolution.result.best == "[data-user='{user}']"
    assert resolution.result.is_template is True


@pytest.mark.asyncio
async def test_variable_supplier_invoked_once_per_resolve(tmp_path: Path) -> None:
    calls = []

    def supplier() -> dict[str, str]:
        calls.append(1)
        return {"user": "erin"}

    backend = FakeBackend("//tr[@data-user='{user}']")
    document = FakeDocument({"//tr[@data-user='erin']"})
    coordinator = _coordinator(tmp_path, backend)

    resolution = await coordinator.resolve(document, _request("Row for {user}", variables=supplier))

    assert resolution.selector == "//tr[@data-user='erin']"
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_substituted_values_are_quote_escaped(tmp_path: Path) -> None:
    backend = FakeBackend("//td[normalize-space(.)='{name}']")
    expected = "//td[normalize-space(.)='O\\'Brien']"
    document = FakeDocument({expected})
    coordinator = _coordinator(tmp_path, backend)

    resolution = await coordinator.resolve(document, _request("Cell for {name}", variables={"name": "O'Brien"}))

    assert resolution.selector == expected
