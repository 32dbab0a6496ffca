"""
Groth16 proof encoding and the proving backend interface.
"""

from .backend import (
    MockProvingBackend,
    ProvingBackend,
    TransferPublicInputs,
    TransferWitness,
    VerifyingKey,
    WithdrawPublicInputs,
    WithdrawWitness,
    recipient_to_field,
)
from .codec import (
    PROOF_SIZE,
    EncodedProof,
    G1Point,
    G2Point,
    Groth16Proof,
    decode_g1,
    decode_g2,
    decode_proof,
    encode_g1,
    encode_g2,
    encode_proof,
    from_snarkjs,
    to_snarkjs,
)

__all__ = [
    "PROOF_SIZE",
    "G1Point",
    "G2Point",
    "Groth16Proof",
    "EncodedProof",
    "encode_g1",
    "encode_g2",
    "decode_g1",
    "decode_g2",
    "encode_proof",
    "decode_proof",
    "from_snarkjs",
    "to_snarkjs",
    "ProvingBackend",
    "MockProvingBackend",
    "VerifyingKey",
    "WithdrawPublicInputs",
    "WithdrawWitness",
    "TransferPublicInputs",
    "TransferWitness",
    "recipient_to_field",
]
