import time
import subprocess
import httpx
import sys
import os
import signal

BASE_URL = "http://127.0.0.1:8000"
API_PREFIX = "/v1"
STAFF_ID = "persist-nurse"


def wait_for_server(retries=10, delay=2):
    url = f"{BASE_URL}/health"
    print(f"Waiting for server at {url}...")
    for i in range(retries):
        try:
            resp = httpx.get(url)
            if resp.status_code == 200:
                print("✅ Server is up!")
                return True
        except httpx.ConnectError:
            pass
        time.sleep(delay)
    print("❌ Server failed to start.")
    return False


def start_server():
    return subprocess.Popen(
        [sys.executable, "-m", "uvicorn", "fieldtrack.app.main:app", "--host", "127.0.0.1", "--port", "8000"],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env={**os.environ, "DB_ECHO": "True"}
    )


def stop_server(proc):
    proc.send_signal(signal.SIGTERM)
    proc.wait()


def run_verification():
    """
    Drive a trip, restart the server and check that the staff member's last
    known location is still served (from the Redis location cache).
    """
    print("\n--- [Step 1] Starting Server (Initial) ---")
    proc = start_server()

    try:
        if not wait_for_server():
            server_logs = proc.communicate(timeout=2)
            print("Server Stdout:", server_logs[0].decode())
            print("Server Stderr:", server_logs[1].decode())
            raise Exception("Server start failed")

        print("\n--- [Step 2] Driving a Trip ---")
        fix = {"latitude": 40.7128, "longitude": -74.0060, "accuracy_meters": 8}
        resp = httpx.post(f"{BASE_URL}{API_PREFIX}/gps/trips/start", json={"staff_id": STAFF_ID, "location": fix})

        if resp.status_code == 409:
            print("⚠️ Trip already active (server state from a previous run?)")
        elif resp.status_code == 201:
            print(f"✅ Trip Started: {resp.json()['trip']['id']}")
        else:
            print(f"❌ Trip Start Failed: {resp.status_code} {resp.text}")
            raise Exception("Trip start failed")

        moved = {"latitude": 40.7228, "longitude": -74.0060, "accuracy_meters": 8, "speed_mps": 12}
        resp = httpx.post(f"{BASE_URL}{API_PREFIX}/gps/trips/location", json={"staff_id": STAFF_ID, "location": moved})
        print(f"Location recorded: {resp.json()}")

        resp = httpx.post(f"{BASE_URL}{API_PREFIX}/gps/trips/end", json={"staff_id": STAFF_ID})
        if resp.status_code != 200:
            print(f"❌ Trip End Failed: {resp.status_code} {resp.text}")
            raise Exception("Trip end failed")
        print(f"✅ Trip Ended: {resp.json()}")

    finally:
        print("\n--- [Step 3] Stopping Server ---")
        stop_server(proc)

    time.sleep(2)  # Wait for port release

    print("\n--- [Step 4] Restarting Server (Verification) ---")
    proc2 = start_server()

    try:
        if not wait_for_server():
            raise Exception("Server restart failed")

        print("\n--- [Step 5] Reading Last Known Location (Post-Restart) ---")
        resp = httpx.get(f"{BASE_URL}{API_PREFIX}/gps/staff-location/{STAFF_ID}")
        location = resp.json().get("current_location")

        if resp.status_code == 200 and location:
            print("✅ Location Survived Restart")
            print(resp.json())
        else:
            print(f"❌ No Location After Restart (Redis down?): {resp.status_code} {resp.text}")
            raise Exception("Location lost after restart")

    finally:
        print("\n--- [Step 6] Stopping Server ---")
        stop_server(proc2)


if __name__ == "__main__":
    run_verification()
