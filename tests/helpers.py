"""Constants and payload builders shared by the test modules."""

TEST_SECRET = "test-secret-key-for-credentials-0123456789"
PAYOUT_ADDRESS = "0x376b7271dD22D14D82Ef594324ea14e7670ed5b2"
ORIGIN = "https://example.com"


def payment_body(network: str = "polygon-amoy") -> dict:
    return {
        "paymentPayload": {
            "x402Version": 1,
            "scheme": "exact",
            "network": network,
            "payload": {"signature": "0xsig", "authorization": {"from": "0xpayer"}},
        },
        "paymentRequirements": {
            "scheme": "exact",
            "network": network,
            "payTo": PAYOUT_ADDRESS,
            "maxAmountRequired": "100",
        },
    }
