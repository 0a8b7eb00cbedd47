"""
Walk one harvest through the whole marketplace: list, apply, accept,
chat, complete and rate.
Run against a live server:
    python scripts/simulate_deal.py http://localhost:8000
"""
import sys
import random
import requests

API = "http://localhost:8000"

def _auth(token):
    return {"Authorization": f"Bearer {token}"}

def _check(resp, label):
    print(label, resp.status_code)
    resp.raise_for_status()
    return resp.json()

def walkthrough(http=requests, api=API):
    """Run the scenario with any client exposing requests-style get/post/patch."""
    tag = random.randint(1000, 9999)

    owner = _check(http.post(f"{api}/api/auth/register", json={
        "username": f"orchard{tag}",
        "email": f"orchard{tag}@example.com",
        "password": "apples-are-ripe",
        "userType": "landowner",
        "fullName": "Olive Orchard",
    }), "register landowner")
    picker = _check(http.post(f"{api}/api/auth/register", json={
        "username": f"picker{tag}",
        "email": f"picker{tag}@example.com",
        "password": "ladders-ready",
        "userType": "harvester",
        "fullName": "Pat Picker",
    }), "register harvester")

    prop = _check(http.post(f"{api}/api/properties", headers=_auth(owner["token"]), json={
        "title": "Three old Bramley trees",
        "description": "Cooking apples, mostly windfall-free",
        "fruitType": "Apples",
        "address": "12 Orchard Lane, Bristol",
        "latitude": 51.4545,
        "longitude": -2.5879,
        "harvestStartDate": "2026-09-01",
        "harvestEndDate": "2026-10-15",
        "ownerShare": 30,
        "estimatedYield": 120,
        "yieldUnit": "kg",
    }), "list property")

    application = _check(http.post(f"{api}/api/applications", headers=_auth(picker["token"]), json={
        "propertyId": prop["id"],
        "message": "Happy to pick over two weekends",
        "hasEquipment": True,
    }), "apply")

    deal = _check(http.post(f"{api}/api/deals", headers=_auth(owner["token"]), json={
        "applicationId": application["id"],
    }), "open deal")

    _check(http.post(f"{api}/api/messages", headers=_auth(picker["token"]), json={
        "dealId": deal["id"],
        "content": "Arriving Saturday 9am",
    }), "message")

    _check(http.patch(f"{api}/api/deals/{deal['id']}", headers=_auth(owner["token"]), json={
        "status": "completed",
        "actualYield": round(random.uniform(80, 140), 1),
    }), "complete")

    _check(http.post(f"{api}/api/deals/{deal['id']}/rating", headers=_auth(owner["token"]),
                     json={"rating": 5, "review": "Tidy and quick"}), "owner rating")
    final = _check(http.post(f"{api}/api/deals/{deal['id']}/rating", headers=_auth(picker["token"]),
                             json={"rating": 4}), "harvester rating")
    return final

def main():
    api = sys.argv[1] if len(sys.argv) > 1 else API
    deal = walkthrough(api=api)
    print("deal:", deal)

if __name__ == "__main__":
    main()
