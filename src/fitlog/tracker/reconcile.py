"""Set reconciliation for ordered child collections (exercises, sets).

Given the ids the remote side holds for a parent and the new ordered list of
children, delete the ids that disappeared and upsert every child with its
position rewritten from list order. Unchanged children keep their ids.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Sequence, TypeVar

from .gateway import RemoteGateway

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class ReconcilePlan:
    to_delete: List[str] = field(default_factory=list)
    to_upsert: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.to_delete and not self.to_upsert


def plan_reconciliation(remote_ids: Iterable[str], children: Sequence[T],
                        to_row: Callable[[T, int], Dict[str, Any]]) -> ReconcilePlan:
    """Build the delete/upsert plan for one parent's children.

    ``to_row(child, index)`` renders a child as a row including its ``id`` and
    ``order_index``.
    """
    rows = [to_row(child, index) for index, child in enumerate(children)]
    keep = {row['id'] for row in rows}
    # Keep remote order so deletes are deterministic.
    to_delete = [rid for rid in dict.fromkeys(remote_ids) if rid not in keep]
    return ReconcilePlan(to_delete=to_delete, to_upsert=rows)


async def reconcile_children(gateway: RemoteGateway, table: str, parent_column: str,
                             parent_id: str, children: Sequence[T],
                             to_row: Callable[[T, int], Dict[str, Any]]) -> ReconcilePlan:
    """Bring the remote children of ``parent_id`` in line with ``children``.

    Raises GatewayError on the first failed call; earlier calls are not undone.
    """
    current = (await gateway.select(table, {parent_column: parent_id})).raise_for_error()
    plan = plan_reconciliation([row['id'] for row in current.data], children, to_row)

    if plan.to_delete:
        (await gateway.delete(table, {'id': plan.to_delete})).raise_for_error()
    if plan.to_upsert:
        (await gateway.upsert(table, plan.to_upsert, on_conflict=['id'])).raise_for_error()

    logger.debug(f"Reconciled {table} for {parent_column}={parent_id}: "
                 f"{len(plan.to_delete)} deleted, {len(plan.to_upsert)} upserted")
    return plan
