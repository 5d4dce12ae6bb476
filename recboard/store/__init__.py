# SPDX-License-Identifier: Apache-2.0
"""Record store adapter, live queries and timestamp normalization."""
from recboard.store.adapter import RecordStore, Transaction, new_id
from recboard.store.fanout import Subscription
from recboard.store.query import QueryDescriptor, collection, collection_group
from recboard.store.timestamps import Timestamp, coerce_timestamp, utcnow

__all__ = [
    "QueryDescriptor",
    "RecordStore",
    "Subscription",
    "Timestamp",
    "Transaction",
    "coerce_timestamp",
    "collection",
    "collection_group",
    "new_id",
    "utcnow",
]
