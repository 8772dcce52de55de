"""
Notification Service - Live fan-out of auction events to viewers of a sale
"""
import asyncio
import logging
import threading
from collections import defaultdict
from typing import Any, Dict, Optional, Protocol, Set

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

from agrobid.db.models import Bid, Sale, User

logger = logging.getLogger(__name__)


class NotificationType:
    """Event names pushed to sale rooms"""
    NEW_BID = "new-bid"
    AUCTION_ENDED = "auction-ended"


class Notifier(Protocol):
    def publish(self, sale_id, event: str, data: Dict[str, Any]) -> None:
        ...


class SaleEventHub:
    """
    Per-sale rooms of connected WebSocket viewers.

    `publish` is synchronous and safe to call from any thread (sync routes run
    in the threadpool, the sweep runs in the scheduler thread); delivery happens
    on the event loop bound at application startup. Delivery is best-effort:
    a viewer that misses an event re-fetches state over HTTP.
    """

    def __init__(self):
        self._rooms: Dict[str, Set[WebSocket]] = defaultdict(set)
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @staticmethod
    def room_name(sale_id) -> str:
        return f"sale-{sale_id}"

    def bind_loop(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop

    def unbind_loop(self):
        self._loop = None

    def join(self, sale_id, websocket: WebSocket):
        with self._lock:
            self._rooms[self.room_name(sale_id)].add(websocket)

    def leave(self, sale_id, websocket: WebSocket):
        room = self.room_name(sale_id)
        with self._lock:
            members = self._rooms.get(room)
            if members is None:
                return
            members.discard(websocket)
            if not members:
                del self._rooms[room]

    def disconnect(self, websocket: WebSocket):
        """Remove a socket from every room it joined."""
        with self._lock:
            for room in list(self._rooms):
                self._rooms[room].discard(websocket)
                if not self._rooms[room]:
                    del self._rooms[room]

    def publish(self, sale_id, event: str, data: Dict[str, Any]) -> None:
        room = self.room_name(sale_id)
        with self._lock:
            sockets = list(self._rooms.get(room, ()))
        if not sockets:
            return

        loop = self._loop
        if loop is None or loop.is_closed():
            logger.warning(f"No event loop bound, dropping '{event}' for {room}")
            return

        message = jsonable_encoder({"event": event, "sale_id": str(sale_id), "data": data})
        try:
            asyncio.run_coroutine_threadsafe(self._broadcast(sale_id, sockets, message), loop)
        except RuntimeError as e:
            logger.warning(f"Could not schedule '{event}' for {room}: {str(e)}")

    async def _broadcast(self, sale_id, sockets, message: Dict[str, Any]):
        for websocket in sockets:
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.info(f"Dropping viewer from {self.room_name(sale_id)}: {str(e)}")
                self.leave(sale_id, websocket)


def notify_new_bid(notifier: Notifier, bid: Bid, bidder: Optional[User], total_bids: int):
    """
    Tell a sale's viewers about a committed bid.

    The committed bid is the highest at the moment of its commit, so its amount
    and the counter returned by the same update describe the sale's price state.
    """
    notifier.publish(
        bid.sale_id,
        NotificationType.NEW_BID,
        {
            "bid": {
                "id": bid.id,
                "amount": bid.amount,
                "buyer": {
                    "id": bid.buyer_id,
                    "name": bidder.display_name if bidder else "Anonymous",
                },
                "created_at": bid.created_at,
            },
            "current_highest_bid": bid.amount,
            "highest_bidder": bid.buyer_id,
            "total_bids": total_bids,
        },
    )


def notify_auction_ended(
    notifier: Notifier,
    sale: Sale,
    outcome: str,
    winner: Optional[User] = None
):
    """Tell a sale's viewers the auction is over (sold, unsold or cancelled)."""
    winner_data = None
    if winner is not None:
        winner_data = {"id": winner.id, "name": winner.display_name}

    notifier.publish(
        sale.id,
        NotificationType.AUCTION_ENDED,
        {
            "outcome": outcome,
            "winner": winner_data,
            "final_price": sale.final_price,
            "total_bids": sale.total_bids,
        },
    )


# Singleton instance
sale_event_hub = SaleEventHub()
