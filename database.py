"""
MongoDB access for the POS backend.

Collections: bills, pendingBills, customers, expenses, vendors, employees,
advances, attendance, inventory, tables, orders, settings. Reads go through
``db`` directly; live updates are delivered by change streams
(``watch_collection``), which need a replica set on the server side.
"""
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from bson import ObjectId
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from config import get_settings

logger = logging.getLogger(__name__)

_settings = get_settings()
client: MongoClient = MongoClient(_settings.database_url, tz_aware=True)
db = client[_settings.database_name]


def oid(obj: Optional[str]) -> Optional[ObjectId]:
    if obj is None:
        return None
    try:
        return ObjectId(obj)
    except Exception:
        return None


def to_str_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    # normalize ObjectId refs to string
    for k, v in list(d.items()):
        if isinstance(v, ObjectId):
            d[k] = str(v)
    return d


def snapshot(collection: str, filt: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    return [to_str_id(d) for d in db[collection].find(filt or {})]


def watch_collection(
    collection: str,
    on_change: Callable[[List[Dict[str, Any]]], None],
    stop: threading.Event,
) -> threading.Thread:
    """
    Push the full collection snapshot to ``on_change`` once, then again after
    every change event, until ``stop`` is set.
    """

    def _run() -> None:
        try:
            on_change(snapshot(collection))
            with db[collection].watch(max_await_time_ms=1000) as stream:
                while not stop.is_set():
                    if stream.try_next() is not None:
                        on_change(snapshot(collection))
        except PyMongoError:
            logger.error("change stream on %s stopped", collection, exc_info=True)

    t = threading.Thread(target=_run, name=f"watch-{collection}", daemon=True)
    t.start()
    return t
