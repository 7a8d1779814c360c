import asyncio
import itertools
import json
import logging
from dataclasses import dataclass, field as dc_field
from typing import Any, Coroutine, Dict, Hashable, Iterable, List, Mapping, Optional, Set

from formflow.interpolation import interpolate, interpolate_url, is_empty
from formflow.schemas import AUTOFILL_TYPES, CHOICE_TYPES, ApiConfig, MapOptions, Option
from formflow.transport import Transport

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    signature: Optional[str] = None
    options: List[Option] = dc_field(default_factory=list)
    loading: bool = False
    generation: int = 0


class OptionCache:
    """
    Resolved option lists keyed by field id (or by a table cell key).

    One entry per key. A new signature invalidates the entry; only the
    response carrying the entry's current generation is applied.
    """

    def __init__(self):
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._generations = itertools.count(1)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def keys(self) -> List[Hashable]:
        return list(self._entries)

    def entry(self, key: Hashable) -> CacheEntry:
        return self._entries.setdefault(key, CacheEntry())

    def options(self, key: Hashable) -> List[Option]:
        entry = self._entries.get(key)
        return list(entry.options) if entry else []

    def is_loading(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return bool(entry and entry.loading)

    def signature(self, key: Hashable) -> Optional[str]:
        entry = self._entries.get(key)
        return entry.signature if entry else None

    def begin(self, key: Hashable, signature: str) -> int:
        """Record a new signature, mark loading and return the fetch's generation."""
        entry = self.entry(key)
        entry.signature = signature
        entry.loading = True
        entry.generation = next(self._generations)
        return entry.generation

    def clear(self, key: Hashable) -> None:
        # forgets the signature and orphans any fetch still in flight
        entry = self.entry(key)
        entry.signature = None
        entry.options = []
        entry.loading = False
        entry.generation = next(self._generations)

    def complete(self, key: Hashable, generation: int, options: List[Option]) -> bool:
        entry = self._entries.get(key)
        if entry is None or entry.generation != generation:
            logger.debug("Dropping stale options for %s (generation %s)", key, generation)
            return False
        entry.options = list(options)
        entry.loading = False
        return True

    def pop(self, key: Hashable) -> Optional[CacheEntry]:
        return self._entries.pop(key, None)

    def move(self, old_key: Hashable, new_key: Hashable) -> None:
        """Re-key an entry; it keeps its options but will be fetched again."""
        entry = self._entries.pop(old_key, None)
        if entry is None:
            self._entries.pop(new_key, None)
            return
        entry.signature = None
        entry.loading = False
        entry.generation = next(self._generations)
        self._entries[new_key] = entry

    def snapshot(self) -> Dict[Hashable, List[Dict[str, Any]]]:
        return {key: [o.model_dump() for o in e.options] for key, e in self._entries.items()}


def make_signature(real_params: Mapping[str, Any], depends_values: Iterable[Any] = (), url: str = "") -> str:
    return (
        url
        + "|"
        + json.dumps(real_params, default=str, separators=(",", ":"))
        + "|"
        + json.dumps(list(depends_values), default=str, separators=(",", ":"))
    )


def extract_path(body: Any, response_path: Optional[str]) -> Any:
    """Walk a dotted path into a JSON body; a missing segment yields None."""
    if not response_path:
        return body
    current = body
    for seg in response_path.split("."):
        if isinstance(current, Mapping):
            current = current.get(seg)
        elif isinstance(current, list) and seg.isdigit() and int(seg) < len(current):
            current = current[int(seg)]
        else:
            return None
    return current


def map_options(items: Any, mapping: Optional[MapOptions]) -> List[Option]:
    """Normalize a remote array into Option{id, label, ...original fields}."""
    if not isinstance(items, list):
        return []
    mapping = mapping or MapOptions()
    id_key, label_key = mapping.idKey, mapping.labelKey

    if id_key or label_key:
        id_key = id_key or label_key
        label_key = label_key or id_key
        return [
            Option.model_validate({**item, "id": item.get(id_key), "label": item.get(label_key)})
            for item in items
            if isinstance(item, Mapping)
        ]

    if items and all(isinstance(item, str) for item in items):
        return [Option(id=item, label=item) for item in items]
    return []


async def fetch_options(transport: Transport, api: ApiConfig, url: str, params: Mapping[str, Any]) -> List[Option]:
    if api.method == "POST":
        body = await transport.request("POST", url, json=dict(params))
    else:
        body = await transport.request("GET", url, params=dict(params))
    return map_options(extract_path(body, api.responsePath), api.mapOptions)


class OptionResolver:
    """
    Resolves option lists of dropdown/radio/checkbox fields with an apiConfig.

    ``refresh`` is meant to be called on every evaluation pass. It only
    schedules fetches (as asyncio tasks on the running loop) and never waits
    for them; results land in ``cache`` when they arrive.
    """

    def __init__(self, transport: Transport, cache: Optional[OptionCache] = None):
        self.transport = transport
        self.cache = cache if cache is not None else OptionCache()
        self._tasks: Set[asyncio.Task] = set()

    def refresh(self, fields: Iterable[Any], env: Mapping[str, Any]) -> List[asyncio.Task]:
        tasks = []
        for f in fields:
            task = self.refresh_field(f, env)
            if task is not None:
                tasks.append(task)
        return tasks

    def refresh_field(self, field: Any, env: Mapping[str, Any]) -> Optional[asyncio.Task]:
        api = getattr(field, "apiConfig", None)
        if api is None or field.type not in CHOICE_TYPES:
            return None

        real_params = interpolate(api.params, env)
        url = interpolate_url(api.url, env)
        depends_values = [env.get(dep_id) for dep_id in api.dependsOn]
        signature = make_signature(real_params, depends_values, url)
        key = field.id

        if self.cache.signature(key) == signature:
            logger.debug("Options for %s unchanged, skipping fetch", key)
            return None

        if any(is_empty(v) for v in depends_values):
            self.cache.clear(key)
            return None

        return self._schedule(key, signature, api, url, real_params)

    def _schedule(self, key: Hashable, signature: str, api: ApiConfig, url: str, params: Mapping[str, Any]) -> asyncio.Task:
        generation = self.cache.begin(key, signature)
        return self._spawn(self._load(key, generation, api, url, params))

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _load(self, key: Hashable, generation: int, api: ApiConfig, url: str, params: Mapping[str, Any]) -> None:
        try:
            options = await fetch_options(self.transport, api, url, params)
        except Exception as e:
            logger.warning("Option source %s failed for %s: %s", url, key, e)
            options = []
        self.cache.complete(key, generation, options)

    async def drain(self) -> None:
        """Wait for every fetch scheduled so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def resolve(self, field: Any, env: Mapping[str, Any]) -> List[Option]:
        task = self.refresh_field(field, env)
        if task is not None:
            await task
        return self.cache.options(field.id)


async def autofill(
    transport: Transport,
    field: Any,
    value: Any,
    env: Mapping[str, Any],
    fields_by_id: Mapping[str, Any],
) -> Dict[str, Any]:
    """
    Fetch a text/date field's data source on commit and map the response
    onto other fields. Returns the updates; failures yield no updates.
    """
    api = getattr(field, "apiConfig", None)
    if api is None or not api.responseMap or not api.url or field.type not in AUTOFILL_TYPES:
        return {}

    merged = {**env, field.id: value}
    params = interpolate(api.params, merged)
    url = interpolate_url(api.url, merged)
    try:
        if api.method == "POST":
            body = await transport.request("POST", url, json=params)
        else:
            body = await transport.request("GET", url, params=params)
    except Exception as e:
        logger.warning("Autofill source %s failed for %s: %s", url, field.id, e)
        return {}
    if not isinstance(body, Mapping):
        logger.warning("Autofill source %s returned %s, expected an object", url, type(body).__name__)
        return {}

    updates: Dict[str, Any] = {}
    for api_key, target_id in api.responseMap.items():
        if api_key not in body:
            continue
        mapped = body[api_key]
        target = fields_by_id.get(target_id)
        if target is not None and target.type == "date" and isinstance(mapped, str) and len(mapped) >= 10:
            mapped = mapped[:10]  # YYYY-MM-DD
        updates[target_id] = mapped
    return updates
