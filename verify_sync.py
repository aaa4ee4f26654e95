
import time

import httpx

BASE_URL = "http://localhost:8000/api"


def run_test():
    with httpx.Client(base_url=BASE_URL) as client:
        dad = client.post("/participants", json={"role": "Parent"}).json()["participant_id"]
        kid = client.post("/participants", json={"role": "Child"}).json()["participant_id"]
        for pid in (dad, kid):
            client.post(f"/participants/{pid}/join", json={"trip_id": "papa-lisa"})

        results = client.post(f"/participants/{kid}/search", json={"query": "Bubble Tea"}).json()
        for spot in results["results"][:1]:
            client.post(f"/participants/{kid}/itinerary", json=spot)
        client.post(f"/participants/{dad}/itinerary", json={"name": "Kölner Dom", "recommended_time": "10:00"})
        client.post(f"/participants/{dad}/position", json={"lat": 50.9413, "lng": 6.9583})
        client.post(f"/participants/{kid}/position", json={"lat": 50.9472, "lng": 6.9189})

        time.sleep(0.5)
        state = client.get(f"/participants/{dad}/state").json()
        print("\nItinerary:")
        for item in state["itinerary"]:
            print(f"- {item['time']} {item['name']} ({item['category']})")
        print("\nPositions:")
        for pos in state["positions"]:
            print(f"- {pos['name']}: {pos['lat']}, {pos['lng']}")
        print("\nTransit:", state["transit_link"])

        for pid in (dad, kid):
            client.post(f"/participants/{pid}/leave")


if __name__ == "__main__":
    run_test()
