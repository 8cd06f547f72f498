"""Orchestration of every change to the order of lists and cards: permission check -> store (one transaction) -> broadcast."""

import logging
from typing import Optional
from uuid import UUID

from src.api.models import (
    BulkReorderRequest,
    CreateItemRequest,
    DeleteItemRequest,
    ItemResponse,
    MoveCardRequest,
    MoveListRequest,
    MoveResponse,
    RebalanceRequest,
    ReorderResponse,
    RenameItemRequest,
)
from src.core.exceptions import Forbidden, InvalidTarget, NotFound
from src.core.models import DomainEvent, OrderedItemModel, Payload, Placement, UserModel
from src.core.shared_types import EventKind, ItemKind
from src.db.repository import OrderedCollectionStore
from src.realtime.broadcaster import Broadcaster
from src.services.collaborators import ActivityLog, Authorization

logger = logging.getLogger(__name__)


class MoveOrchestrator:
    """
    Single entry point for the move / reorder use cases.
    ----
    The store commits before this class builds and publishes the event, so a broadcast never describes uncommitted state.
    Publishing (and the activity log) is best effort: a failure there is logged and never undoes the committed change.
    """

    def __init__(
        self,
        store: OrderedCollectionStore,
        broadcaster: Broadcaster,
        authorization: Authorization,
        activity_log: Optional[ActivityLog] = None,
    ) -> None:
        self.store = store
        self.broadcaster = broadcaster
        self.authorization = authorization
        self.activity_log = activity_log

    # -- moves --
    def move_card(
        self,
        request: MoveCardRequest,
        actor: UserModel,
        origin_session_id: Optional[str] = None,
    ) -> MoveResponse:
        """Drop a card at `target_index` of a list on the same board (possibly its own list)."""
        self._authorize(actor, request.source_list_id)
        if request.target_list_id != request.source_list_id:
            self._authorize(actor, request.target_list_id)

        card = self._fetch_item(ItemKind.CARD, request.card_id)
        if card.parent_id != request.source_list_id:
            raise InvalidTarget(
                f"Card {card.id} is not in list {request.source_list_id} (anymore)."
            )

        board_id = self._board_of(ItemKind.CARD, request.source_list_id)
        if self._board_of(ItemKind.CARD, request.target_list_id) != board_id:
            raise InvalidTarget("Cards can only move between lists of the same board.")

        if request.target_list_id == request.source_list_id:
            placement = self.store.move_within_parent(
                ItemKind.CARD,
                card.id,
                request.target_index,
                expected_parent_id=request.source_list_id,
            )
        else:
            placement = self.store.transfer_to_parent(
                ItemKind.CARD,
                card.id,
                request.target_list_id,
                request.target_index,
                expected_parent_id=request.source_list_id,
            )

        # compare against the row as the write saw it, not as it was fetched above
        previous = placement.previous or card
        moved = self._has_moved(previous, placement.item)
        self._emit_rebalance(board_id, placement, actor)
        if moved:
            self._emit(
                DomainEvent(
                    kind=EventKind.ITEM_MOVED,
                    board_id=board_id,
                    payload={
                        "kind": ItemKind.CARD,
                        "card_id": card.id,
                        "from_list_id": previous.parent_id,
                        "to_list_id": placement.item.parent_id,
                        "new_position": placement.item.position,
                        "card": _item_payload(placement.item),
                    },
                    actor=actor,
                ),
                origin_session_id,
            )
        return MoveResponse(item=ItemResponse.from_model(placement.item), moved=moved)

    def move_list(
        self,
        request: MoveListRequest,
        actor: UserModel,
        origin_session_id: Optional[str] = None,
    ) -> MoveResponse:
        """Reorder a list within its board. Lists never change board."""
        board_list = self._fetch_item(ItemKind.LIST, request.list_id)
        board_id = board_list.parent_id
        self._authorize(actor, board_id)

        placement = self.store.move_within_parent(
            ItemKind.LIST, board_list.id, request.target_index, expected_parent_id=board_id
        )
        moved = self._has_moved(placement.previous or board_list, placement.item)
        self._emit_rebalance(board_id, placement, actor)
        if moved:
            self._emit(
                DomainEvent(
                    kind=EventKind.ITEM_MOVED,
                    board_id=board_id,
                    payload={
                        "kind": ItemKind.LIST,
                        "list_id": board_list.id,
                        "board_id": board_id,
                        "new_position": placement.item.position,
                        "list": _item_payload(placement.item),
                    },
                    actor=actor,
                ),
                origin_session_id,
            )
        return MoveResponse(item=ItemResponse.from_model(placement.item), moved=moved)

    def bulk_reorder(
        self,
        request: BulkReorderRequest,
        actor: UserModel,
        origin_session_id: Optional[str] = None,
    ) -> ReorderResponse:
        """Apply a full ordering of a collection. One event per item whose stored position actually changed."""
        self._authorize(actor, request.parent_id)
        board_id = self._board_of(request.kind, request.parent_id)

        result = self.store.reorder_batch(
            request.kind, request.parent_id, request.ordered_ids
        )
        changed = result.changed()
        for item in changed:
            self._emit(
                DomainEvent(
                    kind=EventKind.ITEM_MOVED,
                    board_id=board_id,
                    payload={
                        "kind": request.kind,
                        "item_id": item.id,
                        "from_parent_id": request.parent_id,
                        "to_parent_id": request.parent_id,
                        "new_position": item.position,
                        "item": _item_payload(item),
                    },
                    actor=actor,
                ),
                origin_session_id,
            )
        logger.info(
            "Reordered %d %ss under %s, %d moved",
            len(result.after),
            request.kind,
            request.parent_id,
            len(changed),
        )
        return ReorderResponse(
            parent_id=request.parent_id,
            items=[ItemResponse.from_model(item) for item in result.after],
            moved_ids=[item.id for item in changed],
        )

    def rebalance(self, request: RebalanceRequest, actor: UserModel) -> list[ItemResponse]:
        """Spread a collection out again (B, 2B, 3B, ...) without changing its order."""
        self._authorize(actor, request.parent_id)
        board_id = self._board_of(request.kind, request.parent_id)

        items = self.store.rebalance_all(request.kind, request.parent_id)
        self._emit(self._rebalance_event(board_id, request.kind, request.parent_id, items, actor))
        return [ItemResponse.from_model(item) for item in items]

    # -- create / rename / delete --
    def create_item(
        self,
        request: CreateItemRequest,
        actor: UserModel,
        origin_session_id: Optional[str] = None,
    ) -> ItemResponse:
        """New list (in a board) or card (in a list), at `at_index` or at the end."""
        self._authorize(actor, request.parent_id)
        board_id = self._board_of(request.kind, request.parent_id)

        placement = self.store.insert(
            request.kind, request.parent_id, request.title, request.at_index
        )
        self._emit_rebalance(board_id, placement, actor)
        self._emit(
            DomainEvent(
                kind=EventKind.ITEM_CREATED,
                board_id=board_id,
                payload={"kind": request.kind, "item": _item_payload(placement.item)},
                actor=actor,
            ),
            origin_session_id,
        )
        return ItemResponse.from_model(placement.item)

    def rename_item(
        self,
        request: RenameItemRequest,
        actor: UserModel,
        origin_session_id: Optional[str] = None,
    ) -> ItemResponse:
        item = self._fetch_item(request.kind, request.item_id)
        self._authorize(actor, item.parent_id)
        board_id = self._board_of(request.kind, item.parent_id)

        renamed = self.store.rename(request.kind, item.id, request.title)
        if renamed is None:
            raise NotFound(f"{request.kind.capitalize()} with {request.item_id=} not found.")
        self._emit(
            DomainEvent(
                kind=EventKind.ITEM_UPDATED,
                board_id=board_id,
                payload={
                    "kind": request.kind,
                    "item": _item_payload(renamed),
                    "changes": {"title": renamed.title},
                },
                actor=actor,
            ),
            origin_session_id,
        )
        return ItemResponse.from_model(renamed)

    def delete_item(
        self,
        request: DeleteItemRequest,
        actor: UserModel,
        origin_session_id: Optional[str] = None,
    ) -> ItemResponse:
        """Remove an item. Its siblings keep their positions."""
        item = self._fetch_item(request.kind, request.item_id)
        self._authorize(actor, item.parent_id)
        board_id = self._board_of(request.kind, item.parent_id)

        deleted = self.store.delete(request.kind, item.id)
        if deleted is None:
            raise NotFound(f"{request.kind.capitalize()} with {request.item_id=} not found.")
        self._emit(
            DomainEvent(
                kind=EventKind.ITEM_DELETED,
                board_id=board_id,
                payload={"kind": request.kind, "item": _item_payload(deleted)},
                actor=actor,
            ),
            origin_session_id,
        )
        return ItemResponse.from_model(deleted)

    # -- Internal helpers --
    def _authorize(self, actor: UserModel, parent_id: UUID) -> None:
        if not self.authorization.can_edit_parent(actor.id, parent_id):
            raise Forbidden(f"User {actor.id} may not edit {parent_id}.")

    def _fetch_item(self, kind: ItemKind, item_id: UUID) -> OrderedItemModel:
        """Attempt to find the item in the store and raise error if it fails."""
        item = self.store.get_item(kind, item_id)
        if item is None:
            raise NotFound(f"{kind.capitalize()} with {item_id=} not found.")
        return item

    def _board_of(self, kind: ItemKind, parent_id: UUID) -> UUID:
        board_id = self.store.board_of_parent(kind, parent_id)
        if board_id is None:
            parent = "Board" if kind is ItemKind.LIST else "List"
            raise NotFound(f"{parent} with {parent_id=} not found.")
        return board_id

    @staticmethod
    def _has_moved(before: OrderedItemModel, after: OrderedItemModel) -> bool:
        return before.parent_id != after.parent_id or before.position != after.position

    def _emit_rebalance(self, board_id: UUID, placement: Placement, actor: UserModel) -> None:
        """Siblings rewritten on the way to a placement must reach the clients before the placement itself."""
        if not placement.rebalanced:
            return
        self._emit(
            self._rebalance_event(
                board_id,
                placement.item.kind,
                placement.item.parent_id,
                placement.rebalanced,
                actor,
            )
        )

    @staticmethod
    def _rebalance_event(
        board_id: UUID,
        kind: ItemKind,
        parent_id: UUID,
        items: list[OrderedItemModel],
        actor: UserModel,
    ) -> DomainEvent:
        return DomainEvent(
            kind=EventKind.ITEMS_REBALANCED,
            board_id=board_id,
            payload={
                "kind": kind,
                "parent_id": parent_id,
                "positions": [{"id": item.id, "position": item.position} for item in items],
            },
            actor=actor,
        )

    def _emit(self, event: DomainEvent, origin_session_id: Optional[str] = None) -> None:
        """Hand a committed change to the activity log and the broadcaster. Never raises."""
        if self.activity_log is not None:
            try:
                self.activity_log.record(event)
            except Exception:
                logger.warning(
                    "Activity log rejected %s on board %s",
                    event.kind,
                    event.board_id,
                    exc_info=True,
                )
        try:
            self.broadcaster.publish(event, origin_session_id)
        except Exception:
            logger.exception("Broadcast of %s on board %s failed", event.kind, event.board_id)


def _item_payload(item: OrderedItemModel) -> Payload:
    return ItemResponse.from_model(item).model_dump()
