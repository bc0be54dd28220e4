"""Contract ABIs for the LoanLedger and achievement NFT contracts."""


def _fn(name, inputs, outputs=(), mutability="view"):
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t, "internalType": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t, "internalType": t} for n, t in outputs],
    }


LOAN_RECORD_COMPONENTS = [
    {"name": "owner", "type": "address", "internalType": "address"},
    {"name": "partner", "type": "address", "internalType": "address"},
    {"name": "amount", "type": "uint256", "internalType": "uint256"},
    {"name": "timestamp", "type": "uint256", "internalType": "uint256"},
    {"name": "description", "type": "string", "internalType": "string"},
    {"name": "loanDate", "type": "uint256", "internalType": "uint256"},
    {"name": "expectedReturnDate", "type": "uint256", "internalType": "uint256"},
]

LOAN_LEDGER_ABI = [
    _fn(
        "recordLoan",
        [
            ("partner", "address"),
            ("amount", "uint256"),
            ("description", "string"),
            ("loanDate", "uint256"),
            ("expectedReturnDate", "uint256"),
        ],
        [("", "bytes32")],
        mutability="nonpayable",
    ),
    _fn("payLoan", [("loanId", "bytes32")], mutability="payable"),
    {
        "type": "function",
        "name": "getLoan",
        "stateMutability": "view",
        "inputs": [{"name": "loanId", "type": "bytes32", "internalType": "bytes32"}],
        "outputs": [
            {
                "name": "",
                "type": "tuple",
                "internalType": "struct LoanLedger.LoanRecord",
                "components": LOAN_RECORD_COMPONENTS,
            }
        ],
    },
    {
        "type": "event",
        "name": "LoanRecorded",
        "anonymous": False,
        "inputs": [
            {"name": "loanId", "type": "bytes32", "indexed": True},
            {"name": "owner", "type": "address", "indexed": True},
            {"name": "partner", "type": "address", "indexed": True},
            {"name": "amount", "type": "uint256", "indexed": False},
            {"name": "timestamp", "type": "uint256", "indexed": False},
            {"name": "description", "type": "string", "indexed": False},
            {"name": "loanDate", "type": "uint256", "indexed": False},
            {"name": "expectedReturnDate", "type": "uint256", "indexed": False},
        ],
    },
]

ACHIEVEMENT_NFT_ABI = [
    _fn(
        "mintAchievement",
        [("recipient", "address"), ("loanId", "bytes32"), ("amount", "uint256")],
        [("", "uint256")],
        mutability="nonpayable",
    ),
    _fn("hasAchievement", [("loanId", "bytes32")], [("", "bool")]),
    _fn("getTokenIdForLoan", [("loanId", "bytes32")], [("", "uint256")]),
    _fn("tokenIdToLoan", [("tokenId", "uint256")], [("", "bytes32")]),
    _fn("ownerOf", [("tokenId", "uint256")], [("", "address")]),
    _fn("tokenURI", [("tokenId", "uint256")], [("", "string")]),
    _fn("balanceOf", [("owner", "address")], [("", "uint256")]),
    _fn("totalSupply", [], [("", "uint256")]),
    _fn("baseTokenURI", [], [("", "string")]),
    _fn("setBaseTokenURI", [("newBaseTokenURI", "string")], mutability="nonpayable"),
]
