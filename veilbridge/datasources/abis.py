"""Contract ABI fragments for the events and functions this service uses."""


def _input(name: str, type_: str, indexed: bool | None = None, **extra) -> dict:
    entry = {"name": name, "type": type_, "internalType": type_, **extra}
    if indexed is not None:
        entry["indexed"] = indexed
    return entry


def _event(name: str, *inputs: dict) -> dict:
    return {"anonymous": False, "inputs": list(inputs), "name": name, "type": "event"}


def _view(name: str, inputs: list[dict], outputs: list[dict]) -> dict:
    return {
        "inputs": inputs,
        "name": name,
        "outputs": outputs,
        "stateMutability": "view",
        "type": "function",
    }


# initiateTransfer(uint32 destinationDomain, bytes32 depositId, bytes ciphertext)
INITIATE_TRANSFER_SIGNATURE = "initiateTransfer(uint32,bytes32,bytes)"
INITIATE_TRANSFER_TYPES = ["uint32", "bytes32", "bytes"]

INGRESS_ABI = [
    _event(
        "DepositCreated",
        _input("depositId", "bytes32", True),
        _input("depositor", "address", True),
        _input("token", "address", False),
        _input("amount", "uint256", False),
        _input("isNative", "bool", False),
    ),
    _event("EncryptedInstructionsReceived", _input("encryptedDataHash", "bytes32", True)),
    _event("EncryptedInstructionsProcessed", _input("encryptedDataHash", "bytes32", True)),
    _view(
        "getTransferIdByCiphertextHash",
        [_input("encryptedDataHash", "bytes32")],
        [_input("", "bytes32")],
    ),
    _view(
        "transfers",
        [_input("", "bytes32")],
        [
            _input("sender", "address"),
            _input("destinationDomain", "uint32"),
            _input("dispatchedAt", "uint256"),
            _input("acknowledged", "bool"),
        ],
    ),
    {
        "inputs": [
            _input("destinationDomain", "uint32"),
            _input("depositId", "bytes32"),
            _input("ciphertext", "bytes"),
        ],
        "name": "initiateTransfer",
        "outputs": [_input("transferId", "bytes32")],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

VAULT_ABI = [
    _event(
        "EncryptedTransferStored",
        _input("transferId", "bytes32", True),
        _input("originDomain", "uint32", True),
        _input("originRouter", "bytes32", True),
        _input("ciphertext", "bytes", False),
    ),
    _event(
        "TransferAcknowledged",
        _input("transferId", "bytes32", True),
        _input("destinationDomain", "uint32", True),
    ),
    _event(
        "PrivatePayloadProcessed",
        _input("transferId", "bytes32", True),
        _input("receiver", "address", False),
        _input("token", "address", False),
        _input("amount", "uint256", False),
        _input("isNative", "bool", False),
    ),
    _view(
        "encryptedTransfers",
        [_input("", "bytes32")],
        [
            _input("originDomain", "uint32"),
            _input("originRouter", "bytes32"),
            {
                "components": [
                    _input("senderPublicKey", "bytes32"),
                    _input("nonce", "bytes16"),
                    _input("ciphertext", "bytes"),
                ],
                "internalType": "struct PrivateTransferVault.EncryptedEnvelope",
                "name": "envelope",
                "type": "tuple",
            },
            _input("acknowledged", "bool"),
        ],
    ),
    {
        "inputs": [_input("transferId", "bytes32")],
        "name": "processTransfer",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function",
    },
]
