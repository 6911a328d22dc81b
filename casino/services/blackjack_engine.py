from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import UUID

from uuid6 import uuid7

from casino.domain import blackjack
from casino.domain.outcomes import RandomOutcomeProvider
from casino.errors import GameNotFound
from casino.models.dc_models import BlackjackActionName
from casino.models.schema_models import BlackjackSessionSchema
from casino.services.session_store import GameSessionStore
from casino.timeutils import utcnow


class BlackjackEngine:
    """Blackjack sessions: dealing, player actions and ownership checks.

    The engine stores state but never touches the ledger. The coordinator
    settles a completed session and then hands it back to ``finish``.
    """

    def __init__(
        self,
        store: GameSessionStore,
        random_provider: RandomOutcomeProvider,
        session_ttl: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.random_provider = random_provider
        self.session_ttl = session_ttl
        self.clock = clock

    async def start(self, user_id: str, bet_amount: int) -> BlackjackSessionSchema:
        """Deal a new game and claim the user's active-game slot.

        Raises:
            GameInProgress: the user already has a game in progress
        """
        game = blackjack.deal(
            session_id=uuid7(),
            user_id=user_id,
            bet_amount=bet_amount,
            deck=self.random_provider.shuffled_deck(),
            now=self.clock(),
            ttl=self.session_ttl,
        )
        await self.store.create(game)
        return game

    async def load(self, session_id: UUID, user_id: str) -> BlackjackSessionSchema:
        game = await self.store.get(session_id)
        # someone else's game is reported as missing
        if game is None or game.user_id != user_id:
            raise GameNotFound()
        return game

    def act(
        self,
        game: BlackjackSessionSchema,
        action: BlackjackActionName,
        hand_index: Optional[int] = None,
    ) -> BlackjackSessionSchema:
        return blackjack.apply_action(game, action, hand_index)

    def is_expired(self, game: BlackjackSessionSchema) -> bool:
        return game.expires_at <= self.clock()

    async def get_active(self, user_id: str) -> Optional[BlackjackSessionSchema]:
        return await self.store.get_active(user_id)

    async def save(self, game: BlackjackSessionSchema) -> BlackjackSessionSchema:
        return await self.store.save(game)

    async def finish(self, game: BlackjackSessionSchema) -> BlackjackSessionSchema:
        return await self.store.complete(game)

    async def discard(self, game: BlackjackSessionSchema) -> None:
        await self.store.discard(game)
