"""
ABI fragments for the contracts the operator talks to.

Only the functions used by the lifecycle operations are listed; the typed
wrappers in chain_client.py are the only consumers.
"""


def _uint(name):
    return {"internalType": "uint256", "name": name, "type": "uint256"}


def _address(name):
    return {"internalType": "address", "name": name, "type": "address"}


def _function(name, inputs, outputs=(), mutability="nonpayable"):
    return {
        "type": "function",
        "name": name,
        "inputs": list(inputs),
        "outputs": list(outputs),
        "stateMutability": mutability,
    }


TOKEN_SALE_ABI = [
    {
        "type": "constructor",
        "inputs": [_address("saleReceiver")],
        "stateMutability": "nonpayable",
    },
    _function(
        "addTokenSale",
        [_uint("tokenId"), _address("token"), _uint("tokenPrice"), _uint("duration")],
    ),
    _function("depositTokens", [_uint("tokenId"), _uint("amount")]),
    _function("pauseSale", [_uint("tokenId")]),
    _function("withdrawRemainingTokens", [_uint("tokenId")]),
    _function(
        "tokens",
        [_uint("tokenId")],
        [
            _address("token"),
            _uint("tokenPrice"),
            _uint("totalTokens"),
            _uint("tokensSold"),
            _uint("saleEndDate"),
            {"internalType": "bool", "name": "saleActive", "type": "bool"},
        ],
        mutability="view",
    ),
]

ERC20_ABI = [
    _function(
        "approve",
        [_address("spender"), _uint("amount")],
        [{"internalType": "bool", "name": "", "type": "bool"}],
    ),
    _function("allowance", [_address("owner"), _address("spender")], [_uint("")], mutability="view"),
    _function("balanceOf", [_address("account")], [_uint("")], mutability="view"),
    _function("decimals", [], [{"internalType": "uint8", "name": "", "type": "uint8"}], mutability="view"),
    _function("totalSupply", [], [_uint("")], mutability="view"),
]
