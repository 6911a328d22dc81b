"""Game Session Store for multi-step blackjack state."""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from casino.crud import CreateData, DeleteData, ReadData, UpdateData
from casino.errors import DuplicateInProgress, GameInProgress
from casino.models.schema_models import BlackjackSessionSchema
from casino.services.store_calls import bounded


class GameSessionStore:
    def __init__(self, Session: async_sessionmaker, timeout: float = 5.0):
        self.Session = Session
        self.timeout = timeout

    async def _create(self, game: BlackjackSessionSchema) -> None:
        async with self.Session() as session:
            try:
                async with session.begin():
                    await CreateData.add_blackjack_session(game, session)
            except IntegrityError:
                raise GameInProgress()

    async def create(self, game: BlackjackSessionSchema) -> None:
        """Persist a new session and claim the user's active-game slot.

        Raises:
            GameInProgress: the user already holds the slot
        """
        await bounded(self._create(game), self.timeout, "Session create")
        logging.info(f"Blackjack session {game.session_id} created for {game.user_id}")

    async def _get(self, session_id: UUID) -> Optional[BlackjackSessionSchema]:
        async with self.Session() as session:
            return await ReadData.read_blackjack_session(session_id, session)

    async def get(self, session_id: UUID) -> Optional[BlackjackSessionSchema]:
        return await bounded(self._get(session_id), self.timeout, "Session read")

    async def _get_active(self, user_id: str) -> Optional[BlackjackSessionSchema]:
        async with self.Session() as session:
            active = await ReadData.read_active_game(user_id, session)
            if active is None:
                return None
            return await ReadData.read_blackjack_session(active.session_id, session)

    async def get_active(self, user_id: str) -> Optional[BlackjackSessionSchema]:
        """The session holding the user's active-game slot, if any."""
        return await bounded(self._get_active(user_id), self.timeout, "Active session read")

    async def _save(self, game: BlackjackSessionSchema, release_slot: bool) -> BlackjackSessionSchema:
        async with self.Session() as session:
            async with session.begin():
                saved = await UpdateData.update_blackjack_session_no_commit(game, session)
                if not saved:
                    raise DuplicateInProgress("Another action on this game is being processed")
                if release_slot:
                    await DeleteData.delete_active_game_no_commit(game.user_id, game.session_id, session)
        return game.model_copy(update={"version": game.version + 1})

    async def save(self, game: BlackjackSessionSchema) -> BlackjackSessionSchema:
        """Store an in-progress state under optimistic versioning.

        Raises:
            DuplicateInProgress: a concurrent action saved first
        """
        return await bounded(self._save(game, release_slot=False), self.timeout, "Session save")

    async def complete(self, game: BlackjackSessionSchema) -> BlackjackSessionSchema:
        """Store the terminal state and free the user's active-game slot."""
        saved = await bounded(self._save(game, release_slot=True), self.timeout, "Session complete")
        logging.info(f"Blackjack session {game.session_id} completed for {game.user_id}")
        return saved

    async def _discard(self, game: BlackjackSessionSchema) -> None:
        async with self.Session() as session:
            async with session.begin():
                await DeleteData.delete_active_game_no_commit(game.user_id, game.session_id, session)
                await DeleteData.delete_blackjack_session_no_commit(game.session_id, session)

    async def discard(self, game: BlackjackSessionSchema) -> None:
        """Remove a session that never reached the ledger."""
        await bounded(self._discard(game), self.timeout, "Session discard")
        logging.info(f"Blackjack session {game.session_id} discarded for {game.user_id}")

    async def _list_expired(self, now: datetime) -> List[UUID]:
        async with self.Session() as session:
            return await ReadData.read_expired_session_ids(now, session)

    async def list_expired(self, now: datetime) -> List[UUID]:
        return await bounded(self._list_expired(now), self.timeout, "Expired session scan")
