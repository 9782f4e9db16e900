"""Winner resolution for the active round.

Polls the block data source for the active round's target block. Once the block
exists the round is closed, the block's transactions are counted, the closest
guess wins, and the result plus an announcement are written exactly once.
"""
import asyncio
import logging
from typing import Dict, Iterable, Optional, Set

from blockguess.models import GLOBAL_CHANNEL, ChatMessageKind, Guess, Round, RoundStatus
from blockguess.services.block_data_client import BlockDataSource
from blockguess.services.round_lifecycle_service import RoundLifecycleManager
from blockguess.store.reactive_table import Subscription
from blockguess.utils.exceptions import ConnectivityError, UpstreamDataError

logger = logging.getLogger(__name__)

# Stored as the winning user id when a round had no guesses
NO_WINNER = "no_winner"

ANNOUNCER_ID = "system"
ANNOUNCER_NAME = "Block Oracle"


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


def select_winner(guesses: Iterable[Guess], actual_tx_count: int) -> Optional[Guess]:
    """
    Pick the guess closest to ``actual_tx_count``.

    Ties go to the earliest submission, then to the lowest guess id. Uses exact
    integer distance.
    """
    ranked = sorted(
        guesses,
        key=lambda g: (abs(g.guess - actual_tx_count), g.submitted_at, g.id or 0),
    )
    return ranked[0] if ranked else None


def format_announcement(round_: Round, actual_tx_count: int, winner: Optional[Guess]) -> str:
    block = f"#{round_.block_number}" if round_.block_number is not None else "?"
    if winner is None:
        return (
            f"🏁 Round #{round_.round_number} is over! Block {block} had {actual_tx_count} transactions. "
            f"No guesses were submitted, so there is no winner."
        )
    distance = abs(winner.guess - actual_tx_count)
    accuracy = "an exact guess" if distance == 0 else f"a guess of {winner.guess} ({distance} off)"
    return (
        f"🏆 Round #{round_.round_number} is over! Block {block} had {actual_tx_count} transactions. "
        f"{winner.display_name} wins {round_.prize} with {accuracy}!"
    )


class WinnerResolutionEngine:
    """
    Keeps one polling task for the active round and finalizes it once.

    The engine is the only place that guards against finalizing a round twice:
    a round id enters ``_resolving`` in the same synchronous step that confirms
    the round is still open, and the result is written only after confirming it
    is closed and not yet finished.
    """

    def __init__(
        self,
        lifecycle: RoundLifecycleManager,
        block_source: BlockDataSource,
        poll_interval: Optional[float] = None,
    ):
        self.lifecycle = lifecycle
        self.block_source = block_source
        self.poll_interval = (
            poll_interval if poll_interval is not None
            else lifecycle.settings.resolution_poll_interval_seconds
        )
        self._timers: Dict[int, asyncio.Task] = {}
        self._resolving: Set[int] = set()
        self._finalized: Set[int] = set()
        self._subscriptions: list[Subscription] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()

    @property
    def running(self) -> bool:
        return self._running

    def is_polling(self, round_id: int) -> bool:
        task = self._timers.get(round_id)
        return task is not None and not task.done()

    def start(self) -> None:
        """Watch the rounds table and begin polling the current active round."""
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        self._subscribe()
        self._running = True
        logger.info("🔭 Winner resolution engine started")
        self._sync_active_round()

    async def stop(self) -> None:
        """Cancel every polling task and drop the table subscriptions."""
        self._unsubscribe()
        self._running = False

        tasks = list(self._timers.values())
        self._timers.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Polling task ended with error during shutdown: {e}")
        logger.info("🔭 Winner resolution engine stopped")

    def rebind(self) -> None:
        """Move the subscriptions to the rounds table of a newly connected store."""
        if not self._running:
            return
        self._unsubscribe()
        self._subscribe()
        logger.info("🔭 Winner resolution engine re-attached to the rounds table")
        self._sync_active_round()

    def _subscribe(self) -> None:
        rounds = self.lifecycle.store.rounds
        self._subscriptions = [
            rounds.subscribe_insert(lambda round_: self._sync_active_round()),
            rounds.subscribe_update(lambda old, new: self._sync_active_round()),
        ]

    def _unsubscribe(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    def refresh(self) -> None:
        """Re-scan the rounds table, for rounds written by another process."""
        self._sync_active_round()

    def _sync_active_round(self) -> None:
        """Make the set of polling tasks match the current active round."""
        if not self._running:
            return
        try:
            active = self.lifecycle.active_round()
        except ConnectivityError as e:
            logger.warning(f"Cannot read active round: {e}")
            return

        target_id = None
        if active is not None and active.block_number is not None and active.id not in self._resolving:
            target_id = active.id

        for round_id in list(self._timers):
            if round_id != target_id:
                self._clear_timer(round_id)

        if target_id is not None and not self.is_polling(target_id):
            self._timers[target_id] = self._loop.create_task(
                self._poll(target_id), name=f"resolve-round-{target_id}"
            )
            logger.info(
                f"⏱️ Polling block #{active.block_number} for round {target_id} "
                f"every {self.poll_interval}s"
            )

    def _clear_timer(self, round_id: int) -> None:
        task = self._timers.pop(round_id, None)
        if task is not None and task is not _current_task() and not task.done():
            task.cancel()
            logger.debug(f"Polling for round {round_id} cancelled")

    async def _poll(self, round_id: int) -> None:
        try:
            while True:
                keep_polling = await self.tick(round_id)
                if not keep_polling:
                    break
                await asyncio.sleep(self.poll_interval)
        finally:
            if self._timers.get(round_id) is asyncio.current_task():
                self._timers.pop(round_id, None)

    async def tick(self, round_id: int) -> bool:
        """
        Run one polling step for ``round_id``.

        Returns True while the round should keep being polled.
        """
        round_ = self._pollable_round(round_id)
        if round_ is None:
            self._clear_timer(round_id)
            return False

        try:
            block_hash = await self.block_source.block_hash_at_height(round_.block_number)
        except UpstreamDataError as e:
            logger.warning(f"⚠️ Block data unavailable for round {round_id}: {e}")
            return True
        except Exception as e:
            logger.exception(f"⚠️ Unexpected error polling block for round {round_id}: {e}")
            return True

        if not block_hash:
            logger.debug(f"Block #{round_.block_number} not mined yet (round {round_id})")
            return True

        # Re-check after the await: another tick may have claimed the round
        round_ = self._pollable_round(round_id)
        if round_ is None or round_id in self._resolving:
            return False
        self._resolving.add(round_id)
        self._clear_timer(round_id)

        logger.info(f"⛏️ Block #{round_.block_number} mined ({block_hash}), resolving round {round_id}")
        try:
            await self._finalize(round_, block_hash)
        except Exception as e:
            logger.exception(f"❌ Winner resolution failed for round {round_id}: {e}")
            logger.critical(
                f"🚨 Round {round_id} is stuck in closed state and needs manual intervention "
                f"(block #{round_.block_number}, hash {block_hash})"
            )
        return False

    def _pollable_round(self, round_id: int) -> Optional[Round]:
        round_ = self.lifecycle.get_round(round_id)
        if round_ is None or not round_.is_open or round_.block_number is None:
            return None
        return round_

    async def _finalize(self, round_: Round, block_hash: str) -> None:
        round_id = round_.id
        self.lifecycle.end_round_manually(round_id)

        txids = await self.block_source.transaction_ids_for_block(block_hash)
        actual_tx_count = len(txids)

        current = self.lifecycle.get_round(round_id)
        if current is None or current.status != RoundStatus.CLOSED or round_id in self._finalized:
            logger.warning(
                f"Round {round_id} changed while resolving "
                f"(status={current.status.value if current else 'missing'}), skipping finalization"
            )
            return

        guesses = self.lifecycle.guesses_for_round(round_id)
        winner = select_winner(guesses, actual_tx_count)
        winning_user_id = winner.user_id if winner is not None else NO_WINNER

        self._finalized.add(round_id)
        finished = self.lifecycle.update_round_result(round_id, actual_tx_count, block_hash, winning_user_id)

        self.lifecycle.post_chat_message(
            user_id=ANNOUNCER_ID,
            display_name=ANNOUNCER_NAME,
            text=format_announcement(finished, actual_tx_count, winner),
            round_id=GLOBAL_CHANNEL,
            kind=ChatMessageKind.WINNER,
        )
        logger.info(
            f"🏆 Round {round_id} resolved: {actual_tx_count} transactions, "
            f"{len(guesses)} guesses, winner={winning_user_id}"
        )
