"""Minimal ABIs for the contracts the harvester talks to."""

ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function"
    }
]

# Chainlink aggregator
PRICE_FEED_ABI = [
    {
        "inputs": [],
        "name": "latestRoundData",
        "outputs": [
            {"internalType": "uint80", "name": "roundId", "type": "uint80"},
            {"internalType": "int256", "name": "answer", "type": "int256"},
            {"internalType": "uint256", "name": "startedAt", "type": "uint256"},
            {"internalType": "uint256", "name": "updatedAt", "type": "uint256"},
            {"internalType": "uint80", "name": "answeredInRound", "type": "uint80"}
        ],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"internalType": "uint8", "name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function"
    }
]

REWARDS_VIEW_ABI = [
    {
        "inputs": [{"internalType": "address", "name": "user", "type": "address"}],
        "name": "getUserRewards",
        "outputs": [
            {
                "components": [
                    {"internalType": "address", "name": "market", "type": "address"},
                    {"internalType": "address", "name": "rewardToken", "type": "address"},
                    {"internalType": "uint256", "name": "supplyRewardsAmount", "type": "uint256"},
                    {"internalType": "uint256", "name": "borrowRewardsAmount", "type": "uint256"}
                ],
                "internalType": "struct Rewards[]",
                "name": "",
                "type": "tuple[]"
            }
        ],
        "stateMutability": "view",
        "type": "function"
    }
]

UNITROLLER_ABI = [
    {
        "inputs": [{"internalType": "address", "name": "holder", "type": "address"}],
        "name": "claimReward",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    }
]

SWAP_CHECKER_ABI = [
    {
        "inputs": [
            {"internalType": "uint256", "name": "amountIn", "type": "uint256"},
            {"internalType": "address", "name": "fromToken", "type": "address"},
            {"internalType": "address", "name": "toToken", "type": "address"}
        ],
        "name": "getExpectedOut",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    }
]


def _view(name: str, output_type: str = "uint256") -> dict:
    return {
        "inputs": [],
        "name": name,
        "outputs": [{"internalType": output_type, "name": "", "type": output_type}],
        "stateMutability": "view",
        "type": "function"
    }


STRATEGY_ABI = [
    _view("allowedSlippageInBps"),
    _view("compoundFee"),
    _view("splitMToken"),
    _view("splitVault"),
    {
        "inputs": [
            {"internalType": "bytes32", "name": "hash", "type": "bytes32"},
            {"internalType": "bytes", "name": "signature", "type": "bytes"}
        ],
        "name": "isValidSignature",
        "outputs": [{"internalType": "bytes4", "name": "", "type": "bytes4"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [
            {"internalType": "uint256", "name": "splitMToken", "type": "uint256"},
            {"internalType": "uint256", "name": "splitVault", "type": "uint256"}
        ],
        "name": "updatePosition",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [],
        "name": "depositIdleTokens",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    }
]
