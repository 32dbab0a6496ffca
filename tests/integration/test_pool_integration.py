"""
Integration tests for the Whistle protocol core.

These tests drive full deposit, transfer and withdrawal flows through the
pool, check persisted state can be exported and restored, exercise the
ceremony archive end to end and race concurrent callers against the
shared stores.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from whistle.ceremony import CeremonyArchive
from whistle.ceremony.chain import ContributionChain
from whistle.config import LAMPORTS_PER_SOL, WhistleConfig
from whistle.crypto.hashing import SHA256Hasher
from whistle.crypto.merkle import MerkleAccumulator, TreeState
from whistle.crypto.notes import Note, generate_note
from whistle.crypto.zkp.backend import WITHDRAW_CIRCUIT, MockProvingBackend, VerifyingKey
from whistle.errors import ConflictError, OperationStatus
from whistle.pool import NullifierRegistry, PoolState, PrivacyPool

pytestmark = pytest.mark.integration

ONE_SOL = LAMPORTS_PER_SOL


def make_pool(backend=None, **overrides):
    settings = {"merkle_depth": 4, "root_history_size": 30, "nullifier_capacity": 32}
    settings.update(overrides)
    return PrivacyPool(backend or MockProvingBackend(), config=WhistleConfig(**settings))


class TestPoolFlows:
    """Full client and pool flows."""

    def test_deposit_withdraw_through_wire_format(self):
        """Test a note saved as JSON can later be withdrawn via the raw payload."""
        pool = make_pool()
        saved = pool.deposit_note(generate_note(10 * ONE_SOL)).unwrap().to_json()
        for _ in range(3):
            pool.deposit_note(generate_note(ONE_SOL)).unwrap()

        note = Note.from_json(saved)
        payload = pool.prepare_withdrawal(note, b"\x42" * 32, relayer_fee=ONE_SOL).to_instruction_data()
        receipt = pool.withdraw_instruction(payload).unwrap()

        assert receipt.net_amount == 9 * ONE_SOL
        assert pool.withdraw_instruction(payload).status == OperationStatus.DOUBLE_SPEND

    def test_transfer_chain(self):
        """Test a note moved through several transfers."""
        pool = make_pool()
        note = pool.deposit_note(generate_note(ONE_SOL)).unwrap()
        spent = [note]

        for _ in range(3):
            new_note = generate_note(note.amount)
            receipt = pool.transfer(pool.prepare_transfer(note, new_note)).unwrap()
            note = new_note.with_leaf_index(receipt.leaf_index)
            spent.append(note)

        assert pool.withdraw(pool.prepare_withdrawal(note, b"\x01" * 32)).is_success
        for old in spent[:-1]:
            assert pool.nullifiers.is_spent(old.nullifier_hash)
        assert pool.tree.next_index == 4

    def test_proof_from_other_ceremony_rejected(self):
        """Test a pool keyed to one setup rejects proofs from another."""
        prover = MockProvingBackend(VerifyingKey.from_artifact(WITHDRAW_CIRCUIT, b"ceremony A"))
        verifier = MockProvingBackend(VerifyingKey.from_artifact(WITHDRAW_CIRCUIT, b"ceremony B"))
        client_pool = make_pool(prover)
        chain_pool = make_pool(verifier)

        note = generate_note(ONE_SOL)
        client_note = client_pool.deposit_note(note).unwrap()
        chain_pool.deposit_note(note).unwrap()

        request = client_pool.prepare_withdrawal(client_note, b"\x02" * 32)
        assert chain_pool.withdraw(request).status == OperationStatus.INVALID_PROOF


class TestStatePersistence:
    """Export and restore of persisted accounts."""

    def test_restore_tree_and_nullifiers(self):
        """Test rebuilding pool stores from their account bytes."""
        pool = make_pool()
        notes = [pool.deposit_note(generate_note(ONE_SOL)).unwrap() for _ in range(5)]
        pool.withdraw(pool.prepare_withdrawal(notes[0], b"\x03" * 32)).unwrap()

        state = PoolState.from_bytes(pool.pool_state().to_bytes())
        tree = MerkleAccumulator.from_tree_state(
            TreeState.from_bytes(pool.tree.to_tree_state().to_bytes()),
            next_index=state.next_index,
        )
        registry = NullifierRegistry.from_account_bytes(pool.nullifiers.to_account_bytes())

        assert tree.current_root == state.current_root
        assert state.total_deposits == 5 * ONE_SOL
        assert registry.is_spent(notes[0].nullifier_hash)
        for note in notes:
            assert tree.verify_proof(note.commitment, tree.get_proof(note.leaf_index))


class TestCeremonyFlow:
    """Ceremony archive feeding the pool's verifying key."""

    def test_archive_to_verifying_key(self, tmp_path):
        """Test the latest archived artifact keys a working pool."""
        with CeremonyArchive(tmp_path, config=WhistleConfig()) as archive:
            archive.initialize_genesis(b"phase 2 initial")
            for i in range(3):
                artifact = f"contribution {i}".encode()
                archive.submit(f"c{i}.zkey", artifact, SHA256Hasher.hash(artifact).to_hex())

            report = archive.verify()
            assert report.integrity_verified
            assert not report.security_verifiable

            latest = archive.latest()
            key = VerifyingKey.from_artifact(WITHDRAW_CIRCUIT, archive.read_artifact(latest["number"]))

        assert key.get_hash() == latest["hash"]
        pool = make_pool(MockProvingBackend(key))
        note = pool.deposit_note(generate_note(ONE_SOL)).unwrap()
        assert pool.withdraw(pool.prepare_withdrawal(note, b"\x04" * 32)).is_success


class TestConcurrency:
    """Concurrent callers against the shared stores."""

    def test_check_and_insert_once(self):
        """Test exactly one of many racing inserts of a nullifier succeeds."""
        registry = NullifierRegistry(capacity=8)
        barrier = threading.Barrier(16)

        def attempt(_):
            barrier.wait()
            return registry.check_and_insert(12345)

        with ThreadPoolExecutor(max_workers=16) as executor:
            results = list(executor.map(attempt, range(16)))

        assert results.count(True) == 1
        assert len(registry) == 1

    def test_racing_withdrawals(self):
        """Test one note withdrawn by many threads pays out once."""
        pool = make_pool()
        note = pool.deposit_note(generate_note(ONE_SOL)).unwrap()
        request = pool.prepare_withdrawal(note, b"\x05" * 32)
        barrier = threading.Barrier(8)

        def attempt(_):
            barrier.wait()
            return pool.withdraw(request).status

        with ThreadPoolExecutor(max_workers=8) as executor:
            statuses = list(executor.map(attempt, range(8)))

        assert statuses.count(OperationStatus.SUCCESS) == 1
        assert statuses.count(OperationStatus.DOUBLE_SPEND) == 7

    def test_concurrent_deposits(self):
        """Test concurrent deposits get distinct consecutive indices."""
        pool = make_pool()

        def attempt(_):
            return pool.deposit_note(generate_note(ONE_SOL)).unwrap().leaf_index

        with ThreadPoolExecutor(max_workers=8) as executor:
            indices = list(executor.map(attempt, range(16)))

        assert sorted(indices) == list(range(16))
        assert pool.total_deposits == 16 * ONE_SOL

    def test_chain_append_compare_and_swap(self):
        """Test racing contributors for the same index: one wins."""
        chain = ContributionChain()
        chain.append(chain.next_record(b"genesis"), b"genesis")
        candidates = [f"candidate {i}".encode() for i in range(8)]
        records = [chain.next_record(artifact) for artifact in candidates]
        barrier = threading.Barrier(len(candidates))

        def attempt(i):
            barrier.wait()
            try:
                chain.append(records[i], candidates[i])
                return True
            except ConflictError:
                return False

        with ThreadPoolExecutor(max_workers=len(candidates)) as executor:
            outcomes = list(executor.map(attempt, range(len(candidates))))

        assert outcomes.count(True) == 1
        assert len(chain) == 2
