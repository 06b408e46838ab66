from locust import HttpUser, task, between
import random


class CustomerUser(HttpUser):
    wait_time = between(0.1, 0.5)

    def on_start(self):
        # Register and log in a fresh customer for this simulated client
        uname = f"user_{random.randint(1, 1_000_000)}"
        self.headers = None
        r = self.client.post("/auth/register", json={
            "username": uname,
            "email": f"{uname}@example.com",
            "password": "secret123",
            "full_name": uname,
        })
        if r.status_code != 201:
            return
        r = self.client.post("/auth/login", json={"login": uname, "password": "secret123"})
        if r.status_code == 200:
            self.headers = {"Authorization": f"Bearer {r.json()['access_token']}"}

    @task(3)
    def browse_menu(self):
        self.client.get("/menu")

    @task(2)
    def place_order(self):
        if not self.headers:
            return
        menu = self.client.get("/menu").json()
        if not menu:
            return
        for item in random.sample(menu, k=min(2, len(menu))):
            self.client.post("/cart/items", json={"item_id": item["id"], "quantity": random.randint(1, 3)},
                             headers=self.headers)
        self.client.post("/checkout", json={
            "delivery_address": "12 Jalan Ampang, Kuala Lumpur",
            "phone": "012-3456789",
            "payment_method": random.choice(["cash", "online"]),
        }, headers=self.headers)

    @task(1)
    def list_orders(self):
        if self.headers:
            self.client.get("/orders", headers=self.headers)
