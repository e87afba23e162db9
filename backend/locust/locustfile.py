"""
Locust Load Test Suite

The service does not register users, so the run works against seeded data:
  LOAD_DORM_ID        dorm to hit (default 1)
  LOAD_ROOM_IDS       comma-separated rooms students fight over (default 1,2,3)
  LOAD_STUDENT_IDS    first-last student user ids, e.g. 2-201 (default 2-201)
Tokens are minted locally with the service's SECRET_KEY.

Run scenarios:
  locust -f locustfile.py --tags contention   # Many students, few rooms
  locust -f locustfile.py --tags throughput   # Cached room listings
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests

After a contention run, verify:
  SELECT room_id, COUNT(*) FROM bookings WHERE status = 'Confirmed' GROUP BY room_id;
Every count should be <= 1, and GET /api/v1/bookings/divergent?dorm_id=... should
list only pending_room_taken entries.
"""

import os
import random

from locust import HttpUser, task, between, tag, events

from lumiq.core.security import ROLE_STUDENT, create_access_token

DORM_ID = int(os.environ.get("LOAD_DORM_ID", "1"))
ROOM_IDS = [int(r) for r in os.environ.get("LOAD_ROOM_IDS", "1,2,3").split(",")]
_first, _last = (int(n) for n in os.environ.get("LOAD_STUDENT_IDS", "2-201").split("-"))
STUDENT_IDS = list(range(_first, _last + 1))


def student_headers() -> dict:
    token = create_access_token({"sub": str(random.choice(STUDENT_IDS)), "role": ROLE_STUDENT})
    return {"Authorization": f"Bearer {token}"}


def booking_body(room_id: int) -> dict:
    return {
        "dormId": DORM_ID,
        "roomId": room_id,
        "moveInDate": "2026-11-01",
        "stayDuration": 6,
        "durationType": "months",
        "paymentMethod": "card",
    }


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print(f"\nLoad target: dorm {DORM_ID}, rooms {ROOM_IDS}, {len(STUDENT_IDS)} students\n")


class ContentionUser(HttpUser):
    """
    TEST 1: Contention - hundreds of students -> a handful of Available rooms

    Run: locust -f locustfile.py --tags contention -u 200 -r 50 --run-time 30s

    Every first booking per student and room is accepted (201); repeats get
    409 DuplicateBooking. Exactly one per room comes back Confirmed; the
    rest are Pending with a reservation_warning.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = student_headers()

    @tag("contention")
    @task
    def book_contended_room(self):
        with self.client.post("/api/v1/bookings/",
            json=booking_body(random.choice(ROOM_IDS)),
            headers=self.headers,
            name="/api/v1/bookings/ [contended]",
            catch_response=True
        ) as resp:
            if resp.status_code == 409 and resp.json().get("error") == "DuplicateBooking":
                resp.success()  # this student already has an active booking for the room
                return
            if resp.status_code != 201:
                resp.failure(f"Unexpected: {resp.status_code}")
                return
            data = resp.json()
            if data["status"] == "Pending" and not data.get("reservation_warning"):
                resp.failure("Pending booking without a reservation warning")
            else:
                resp.success()


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. With REDIS_ENABLED=false on the server, run again

    Compare avg response time, requests/sec and P95/P99 latency.
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_rooms_cached(self):
        page = random.randint(1, 5)
        self.client.get(f"/api/v1/rooms/?dorm_id={DORM_ID}&page={page}&page_size=20",
            name="/api/v1/rooms/ [cached]")

    @tag("throughput", "read")
    @task(3)
    def dorm_statistics(self):
        self.client.get(f"/api/v1/rooms/dorm/{DORM_ID}/statistics",
            name="/api/v1/rooms/dorm/{id}/statistics")

    @tag("throughput", "read")
    @task(2)
    def upcoming_vacancies(self):
        self.client.get(f"/api/v1/rooms/upcoming-available/30?dorm_id={DORM_ID}",
            name="/api/v1/rooms/upcoming-available/{days}")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = student_headers()

    def _expect(self, resp, allowed):
        if resp.status_code in allowed:
            resp.success()
        else:
            resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_room(self):
        with self.client.post("/api/v1/bookings/", json=booking_body(999999),
            headers=self.headers, catch_response=True) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def client_sets_status(self):
        body = {**booking_body(ROOM_IDS[0]), "status": "Confirmed"}
        with self.client.post("/api/v1/bookings/", json=body,
            headers=self.headers, catch_response=True) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def conflicting_aliases(self):
        body = {**booking_body(ROOM_IDS[0]), "move_in_date": "2027-01-01"}
        with self.client.post("/api/v1/bookings/", json=body,
            headers=self.headers, catch_response=True) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/bookings/", data="not json at all",
            headers=self.headers, catch_response=True) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post("/api/v1/bookings/", json=booking_body(ROOM_IDS[0]),
            catch_response=True) as resp:
            self._expect(resp, [401])

    @tag("edge")
    @task
    def student_reserves_directly(self):
        with self.client.post(f"/api/v1/rooms/{ROOM_IDS[0]}/reserve", json={"user_id": STUDENT_IDS[0]},
            headers=self.headers, catch_response=True) as resp:
            self._expect(resp, [403])
