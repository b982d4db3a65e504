# decision.py
"""
Where does a customer go next?

 - Decision / VisibleSection: the request and response of one decision
 - DecisionProvider: the single-method contract the simulation consumes
 - FallbackDecisionProvider: deterministic local rules, always available
 - DecisionCache: process-wide memo of remote decisions, explicit clear()
 - DecisionDispatcher: bounded-wait gateway used by the simulation; any
   remote failure, timeout or malformed answer falls back for that decision
 - OllamaDecisionProvider / OpenRouterDecisionProvider: LLM-backed providers
"""

import json
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

import requests

import config

PRODUCT = "product"
CHECKOUT = "checkout"
EXIT = "exit"
DECISION_KINDS = (PRODUCT, CHECKOUT, EXIT)


@dataclass(frozen=True)
class VisibleSection:
    label: str
    distance: float
    crowd_count: int

    def to_dict(self) -> Dict:
        return {"label": self.label, "distance": self.distance, "crowdCount": self.crowd_count}


@dataclass(frozen=True)
class Decision:
    kind: str
    target: Optional[str] = None

    def __post_init__(self):
        if self.kind not in DECISION_KINDS:
            raise ValueError(f"Unknown decision kind {self.kind!r}")
        if self.kind == PRODUCT and not self.target:
            raise ValueError("A product decision needs a target label")

    def to_dict(self) -> Dict:
        return {"kind": self.kind, "target": self.target}

    @classmethod
    def from_dict(cls, data: Dict) -> "Decision":
        if not isinstance(data, dict) or "kind" not in data:
            raise ValueError(f"Malformed decision response: {data!r}")
        return cls(kind=str(data["kind"]).lower(), target=data.get("target"))


def build_request(visible: Sequence[VisibleSection], shopping_list: Sequence[str],
                  collected: Sequence[str]) -> Dict:
    return {
        "visibleSections": [s.to_dict() for s in visible],
        "shoppingList": list(shopping_list),
        "collected": list(collected),
    }


class DecisionProvider(Protocol):
    def decide(
        self,
        visible: Sequence[VisibleSection],
        shopping_list: Sequence[str],
        collected: Sequence[str],
    ) -> Decision: ...


# ---------------------------
# Deterministic fallback
# ---------------------------
class FallbackDecisionProvider:
    """
    Local rule set:
      1. everything collected -> checkout
      2. a visible section with an uncollected list item -> the least crowded,
         then the nearest one
      3. anything visible -> the nearest section (browsing)
      4. nothing visible -> checkout
    """

    is_local = True

    def decide(self, visible, shopping_list, collected) -> Decision:
        collected_set = set(collected)
        if all(item in collected_set for item in shopping_list):
            return Decision(CHECKOUT)

        needed = {item for item in shopping_list if item not in collected_set}
        wanted = [s for s in visible if s.label in needed]
        if wanted:
            best = min(wanted, key=lambda s: (s.crowd_count, s.distance))
            return Decision(PRODUCT, best.label)

        if visible:
            nearest = min(visible, key=lambda s: s.distance)
            return Decision(PRODUCT, nearest.label)

        return Decision(CHECKOUT)


# ---------------------------
# Process-wide cache
# ---------------------------
def cache_key(visible: Sequence[VisibleSection], shopping_list: Sequence[str],
              collected: Sequence[str]) -> Tuple[Tuple[str, ...], Tuple[str, ...], Tuple[str, ...]]:
    return (
        tuple(sorted({s.label for s in visible})),
        tuple(sorted(shopping_list)),
        tuple(sorted(set(collected))),
    )


class DecisionCache:
    """
    Thread-safe memo of decisions. Entries never expire; identical keys are
    expected to map to equivalent decisions, so the last writer wins.
    """

    def __init__(self):
        self._entries: Dict[Tuple, Decision] = {}
        self._lock = threading.Lock()

    def get(self, key) -> Optional[Decision]:
        with self._lock:
            return self._entries.get(key)

    def set(self, key, decision: Decision):
        with self._lock:
            self._entries[key] = decision

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def __contains__(self, key):
        with self._lock:
            return key in self._entries


DECISION_CACHE = DecisionCache()


def clear_decision_cache():
    DECISION_CACHE.clear()


# ---------------------------
# Dispatcher (bounded wait + fallback)
# ---------------------------
class DecisionDispatcher:
    """
    The simulation's only way to obtain decisions.

    Local providers (is_local = True) are called directly. Others are looked
    up in the cache, then called on a worker thread with a timeout. Errors,
    timeouts and malformed answers are never propagated: the fallback decides
    instead, and that fallback decision is not cached. While a timed-out call
    is still running the provider is not called again.
    """

    def __init__(
        self,
        provider: Optional[DecisionProvider] = None,
        cache: Optional[DecisionCache] = None,
        timeout: Optional[float] = None,
        fallback: Optional[DecisionProvider] = None,
        verbose: bool = False,
    ):
        self.fallback = fallback or FallbackDecisionProvider()
        self.provider = provider or self.fallback
        self.cache = DECISION_CACHE if cache is None else cache
        self.timeout = config.DECISION_TIMEOUT if timeout is None else timeout
        self.verbose = verbose
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: Optional[Future] = None

        # --- metrics ---
        self.remote_calls = 0
        self.cache_hits = 0
        self.fallbacks = 0

    @property
    def is_local(self) -> bool:
        return bool(getattr(self.provider, "is_local", False))

    def decide(self, visible, shopping_list, collected) -> Decision:
        if self.is_local:
            return self.provider.decide(visible, shopping_list, collected)

        key = cache_key(visible, shopping_list, collected)
        cached = self.cache.get(key)
        if cached is not None:
            self.cache_hits += 1
            return cached

        try:
            decision = self._call_remote(visible, shopping_list, collected)
        except FutureTimeout:
            self._note_fallback(f"timed out after {self.timeout:.1f}s")
            return self.fallback.decide(visible, shopping_list, collected)
        except Exception as e:
            self._note_fallback(f"{type(e).__name__}: {e}")
            return self.fallback.decide(visible, shopping_list, collected)

        self.cache.set(key, decision)
        return decision

    @property
    def busy(self) -> bool:
        """True while an earlier (timed-out) remote call is still running."""
        return self._pending is not None and not self._pending.done()

    def _call_remote(self, visible, shopping_list, collected) -> Decision:
        # never queue behind a hung call
        if self.busy:
            raise RuntimeError("previous remote call still running")

        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="decision")
        self.remote_calls += 1
        future = self._executor.submit(self.provider.decide, list(visible), list(shopping_list), list(collected))
        self._pending = future
        try:
            decision = future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            raise
        if isinstance(decision, dict):
            decision = Decision.from_dict(decision)
        if not isinstance(decision, Decision):
            raise ValueError(f"provider returned {type(decision).__name__}, expected Decision")
        return decision

    def _note_fallback(self, reason: str):
        self.fallbacks += 1
        if self.verbose:
            print(f"[decision] provider failed ({reason}); using fallback")

    def close(self):
        if self._executor is not None:
            # a timed-out call may still be running; do not wait for it
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        self._pending = None


# ---------------------------
# LLM-backed providers
# ---------------------------
def build_prompt(visible: Sequence[VisibleSection], shopping_list: Sequence[str],
                 collected: Sequence[str]) -> str:
    def describe(s: VisibleSection) -> str:
        people = "person" if s.crowd_count == 1 else "people"
        # world units are roughly a tenth of a foot
        return f"{s.label} ({round(s.distance / 10)} feet away, {s.crowd_count} {people} there)"

    visible_text = ", ".join(describe(s) for s in visible) or "nothing"
    needs_text = ", ".join(item for item in shopping_list if item not in collected)
    has_text = ", ".join(collected) if collected else "nothing"
    return (
        f"You are shopping in a store. You can see: {visible_text}. "
        f"Your shopping list needs: [{needs_text}]. You already have: [{has_text}]. "
        "Where do you go next? Respond with ONLY the section name, 'checkout', or 'exit'. "
        "Be realistic - you might avoid crowded areas or browse items not on your list."
    )


def parse_decision(text: str, visible: Sequence[VisibleSection], shopping_list: Sequence[str],
                   collected: Sequence[str]) -> Decision:
    """
    Map a free-text answer onto a Decision.

    checkout and exit both mean "go pay" and are only accepted once the list
    is complete (customers never leave without paying); a section
    is accepted when it is visible and still needed. Anything else raises
    ValueError so the dispatcher falls back.
    """
    answer = (text or "").strip().lower()
    if not answer:
        raise ValueError("empty decision text")

    complete = all(item in collected for item in shopping_list)
    if complete and ("checkout" in answer or "exit" in answer):
        return Decision(CHECKOUT)

    needed = {item for item in shopping_list if item not in collected}
    for section in visible:
        name = section.label.lower()
        if (name in answer or answer in name) and section.label in needed:
            return Decision(PRODUCT, section.label)

    raise ValueError(f"unusable decision text {text!r}")


class OllamaDecisionProvider:
    """Asks a local Ollama server (POST /api/generate)."""

    is_local = False

    def __init__(self, model: Optional[str] = None, base_url: Optional[str] = None,
                 timeout: Optional[float] = None, temperature: float = 0.7):
        self.model = model or config.OLLAMA_MODEL
        self.base_url = (base_url or config.OLLAMA_URL).rstrip("/")
        self.timeout = config.DECISION_TIMEOUT if timeout is None else timeout
        self.temperature = temperature

    def decide(self, visible, shopping_list, collected) -> Decision:
        payload = {
            "model": self.model,
            "prompt": build_prompt(visible, shopping_list, collected),
            "stream": False,
            "options": {"temperature": self.temperature},
        }
        response = requests.post(f"{self.base_url}/api/generate", json=payload, timeout=self.timeout)
        response.raise_for_status()
        text = response.json().get("response", "")
        return parse_decision(text, visible, shopping_list, collected)


class OpenRouterDecisionProvider:
    """Asks an OpenAI-compatible chat completions endpoint (OpenRouter)."""

    is_local = False

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 url: Optional[str] = None, timeout: Optional[float] = None):
        self.api_key = api_key or os.environ.get(config.OPENROUTER_API_KEY_ENV, "")
        self.model = model or config.OPENROUTER_MODEL
        self.url = url or config.OPENROUTER_URL
        self.timeout = config.DECISION_TIMEOUT if timeout is None else timeout

    def decide(self, visible, shopping_list, collected) -> Decision:
        if not self.api_key:
            raise RuntimeError(f"no API key (set {config.OPENROUTER_API_KEY_ENV})")

        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": build_prompt(visible, shopping_list, collected)}],
        }
        response = requests.post(self.url, headers=headers, data=json.dumps(payload), timeout=self.timeout)
        response.raise_for_status()
        choices = response.json().get("choices") or []
        if not choices:
            raise ValueError("response without choices")
        text = choices[0].get("message", {}).get("content", "")
        return parse_decision(text, visible, shopping_list, collected)


PROVIDERS = {
    "fallback": FallbackDecisionProvider,
    "ollama": OllamaDecisionProvider,
    "openrouter": OpenRouterDecisionProvider,
}


def make_decision_provider(name: Optional[str] = None) -> DecisionProvider:
    key = (name or config.DECISION_PROVIDER).lower()
    if key not in PROVIDERS:
        raise ValueError(f"Unknown decision provider '{key}' (choose from {', '.join(sorted(PROVIDERS))})")
    return PROVIDERS[key]()


def available_providers() -> List[str]:
    return sorted(PROVIDERS)
