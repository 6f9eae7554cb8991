"""
Ledger transaction submission for Bucket Hub

This module builds fee parameters from current network conditions,
submits state-changing transactions and interprets their receipts. It also
provides the factory functions for every transaction intent the
orchestrators issue.

A receipt that does not report success is fatal. Nothing is resubmitted:
replaying an identical intent (a deletion, say) is not safe.
"""

import logging
from typing import Optional, Dict, Any, List

from .errors import ExecutionRevertedError, SubmissionRejectedError
from .interfaces import ChainClient
from .models import FeeOptions, FileInfo, Receipt, TxIntent

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY_FEE_WEI = 1_500_000_000
DEFAULT_GAS_LIMIT = 3_000_000

# Custom replication with a single replica, matching the provider's default
REPLICATION_CUSTOM = "Custom"
DEFAULT_REPLICAS = 1


class FeePolicy:
    """Fixed priority fee and gas ceiling; max fee follows the base fee"""

    def __init__(self, priority_fee_wei: int = DEFAULT_PRIORITY_FEE_WEI,
                 gas_limit: int = DEFAULT_GAS_LIMIT):
        self.priority_fee_wei = priority_fee_wei
        self.gas_limit = gas_limit

    def build(self, base_fee: int) -> FeeOptions:
        """maxFeePerGas = 2 * baseFee + priorityFee"""
        return FeeOptions(
            max_fee_per_gas=2 * base_fee + self.priority_fee_wei,
            max_priority_fee_per_gas=self.priority_fee_wei,
            gas=self.gas_limit
        )


class TransactionSubmitter:
    """Submits intents and waits for a successful receipt"""

    def __init__(self, chain: ChainClient, fee_policy: Optional[FeePolicy] = None):
        self.chain = chain
        self.fee_policy = fee_policy or FeePolicy()

    async def build_fee_options(self) -> FeeOptions:
        """Fee parameters for the current block; recomputed on every submission"""
        base_fee = await self.chain.current_base_fee()
        fee_options = self.fee_policy.build(base_fee)
        logger.debug("Base fee %d wei -> max fee %d wei", base_fee, fee_options.max_fee_per_gas)
        return fee_options

    async def submit(self, intent: TxIntent, failure_message: Optional[str] = None) -> Receipt:
        """
        Submit an intent and wait for inclusion

        Raises SubmissionRejectedError when the node refuses the transaction
        and ExecutionRevertedError when the receipt is not successful.
        """
        fee_options = await self.build_fee_options()

        try:
            tx_hash = await self.chain.submit_transaction(intent, fee_options)
        except Exception as e:
            raise SubmissionRejectedError(f"{intent.method} was rejected by the node: {e}") from e

        if not tx_hash:
            raise SubmissionRejectedError(f"{intent.method}() did not return a transaction hash")

        logger.info("Submitted %s: %s", intent.method, tx_hash)
        receipt = await self.chain.wait_for_receipt(tx_hash)

        if not receipt.succeeded:
            message = f"{failure_message}: {tx_hash}" if failure_message else None
            raise ExecutionRevertedError(tx_hash, message)

        logger.info("%s included in block %s", intent.method, receipt.block_number)
        return receipt


# Intent factory functions
def create_bucket_intent(msp_id: str, name: str, is_private: bool, value_prop_id: str) -> TxIntent:
    """Create a bucket held by the given storage provider"""
    return TxIntent(method="createBucket", params={
        "mspId": msp_id,
        "name": name,
        "isPrivate": is_private,
        "valuePropId": value_prop_id
    })


def delete_bucket_intent(bucket_id: str) -> TxIntent:
    """Delete an empty bucket"""
    return TxIntent(method="deleteBucket", params={"bucketId": bucket_id})


def issue_storage_request_intent(
    bucket_id: str,
    location: str,
    fingerprint: str,
    size: int,
    msp_id: str,
    peer_ids: List[str],
    replication: str = REPLICATION_CUSTOM,
    replicas: int = DEFAULT_REPLICAS
) -> TxIntent:
    """Ask the provider to store a file in a bucket"""
    return TxIntent(method="issueStorageRequest", params={
        "bucketId": bucket_id,
        "location": location,
        "fingerprint": fingerprint,
        "size": size,
        "mspId": msp_id,
        "peerIds": list(peer_ids),
        "replicationLevel": replication,
        "replicas": replicas
    })


def request_delete_file_intent(file_info: FileInfo) -> TxIntent:
    """Delete a stored file; the payload is the file's current metadata"""
    payload: Dict[str, Any] = file_info.model_dump(mode='json', by_alias=True)
    return TxIntent(method="requestDeleteFile", params=payload)
