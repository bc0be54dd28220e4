import requests
import time
import sys
import uuid

BASE_URL = "http://localhost:8000"


def random_wallet():
    return "0x" + uuid.uuid4().hex + uuid.uuid4().hex[:8]


def random_bytes32():
    return "0x" + uuid.uuid4().hex + uuid.uuid4().hex


def test_health():
    print("Testing Health Check...")
    try:
        resp = requests.get(f"{BASE_URL}/health")
        assert resp.status_code == 200
        print(f"✅ Health Check Passed: {resp.json()}")
    except Exception as e:
        print(f"❌ Health Check Failed: {e}")
        sys.exit(1)


def signup(label):
    suffix = uuid.uuid4().hex[:6]
    user_data = {
        "name": f"{label} Shop",
        "storeName": f"{label} General Store",
        "username": f"{label.lower()}_{suffix}",
        "email": f"{label.lower()}_{suffix}@example.com",
        # Uppercase and no 0x prefix: stored normalized
        "walletAddress": random_wallet()[2:].upper(),
    }
    resp = requests.post(f"{BASE_URL}/users", json=user_data)
    if resp.status_code != 201:
        print(f"❌ Signup {label} Failed: {resp.text}")
        return None
    user = resp.json()["user"]
    assert user["walletAddress"] == "0x" + user_data["walletAddress"].lower()
    print(f"✅ Signup {label} Passed")

    resp = requests.get(f"{BASE_URL}/users", params={"walletAddress": user_data["walletAddress"]})
    assert resp.status_code == 200
    assert resp.json()["user"]["id"] == user["id"]
    print(f"✅ Lookup {label} by wallet Passed")
    return user


def test_partners(owner, partner):
    print("\nTesting Partners Module...")
    resp = requests.post(f"{BASE_URL}/partners", json={
        "ownerWallet": owner["walletAddress"],
        "partnerUsername": partner["username"],
    })
    if resp.status_code != 200:
        print(f"❌ Add Partner Failed: {resp.text}")
        return None
    link = resp.json()["partner"]
    print("✅ Add Partner Passed")

    resp = requests.post(f"{BASE_URL}/partners", json={
        "ownerWallet": owner["walletAddress"],
        "partnerUsername": partner["username"],
    })
    assert resp.status_code == 409
    print("✅ Duplicate Partner Rejected")

    resp = requests.get(f"{BASE_URL}/partners", params={"ownerWallet": owner["walletAddress"]})
    assert resp.json()["partnerCount"] == 1
    print("✅ List Partners Passed")
    return link


def test_loan_lifecycle(owner, partner, link):
    print("\nTesting Loan Lifecycle...")
    resp = requests.post(f"{BASE_URL}/loans", json={
        "ownerWallet": owner["walletAddress"],
        "partnerId": link["id"],
        "amount": 1000,
        "description": "Sugar and flour",
    })
    if resp.status_code != 200:
        print(f"❌ Create Loan Failed: {resp.text}")
        return
    loan = resp.json()["loan"]
    assert loan["status"] == "pending"
    print("✅ Create Loan Passed")

    resp = requests.post(f"{BASE_URL}/loans/accept", json={
        "loanId": loan["id"], "partnerWallet": partner["walletAddress"], "action": "accept",
    })
    assert resp.status_code == 200 and resp.json()["needsOnChainRecording"] is True
    print("✅ Accept Loan Passed")

    resp = requests.post(f"{BASE_URL}/loans/accept", json={
        "loanId": loan["id"], "partnerWallet": partner["walletAddress"], "action": "reject",
    })
    assert resp.status_code == 400
    print("✅ Second Decision Rejected")

    resp = requests.post(f"{BASE_URL}/loans/record-onchain", json={
        "loanId": loan["id"], "ownerWallet": owner["walletAddress"],
    })
    assert resp.status_code == 200
    terms = resp.json()["loan"]
    print(f"📝 recordLoan terms: amountNative={terms['amountNative']} loanDate={terms['loanDate']}")

    resp = requests.post(f"{BASE_URL}/loans/update-tx", json={
        "loanId": loan["id"], "txHash": random_bytes32(), "onchainLoanId": random_bytes32(),
    })
    assert resp.json()["loan"]["status"] == "waiting on payment"
    print("✅ Record On-chain Passed")

    resp = requests.get(f"{BASE_URL}/loans/pay", params={
        "loanId": loan["id"], "partnerWallet": partner["walletAddress"],
    })
    assert resp.status_code == 200
    print("✅ Payment Details Passed")

    resp = requests.post(f"{BASE_URL}/loans/pay", json={
        "loanId": loan["id"], "partnerWallet": partner["walletAddress"], "txHash": random_bytes32(),
    })
    body = resp.json()
    assert body["loan"]["status"] == "paid back"
    print(f"✅ Pay Loan Passed (nft: {body['nft']})")

    resp = requests.get(f"{BASE_URL}/loans", params={
        "ownerWallet": owner["walletAddress"], "partnerWallet": owner["walletAddress"],
    })
    summary = resp.json()
    print(f"📊 Given: {summary['totalLoanGiven']} Taken: {summary['totalLoanTaken']}")
    assert summary["totalLoanGiven"] == 0
    print("✅ Totals Passed")


if __name__ == "__main__":
    # Wait for server to start
    time.sleep(2)

    test_health()
    owner = signup("Owner")
    partner = signup("Partner")
    if owner and partner:
        link = test_partners(owner, partner)
        if link:
            test_loan_lifecycle(owner, partner, link)

    print("\n🎉 Loan flow verified!")
