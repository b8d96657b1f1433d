from types import SimpleNamespace

from ratelimit import RateLimiter, client_ip


class FakeBuckets:
    def __init__(self):
        self.docs = {}

    def find_one_and_update(self, filt, update, upsert=False, return_document=None):
        doc = self.docs.get(filt["_id"])
        if doc is None:
            doc = {"_id": filt["_id"], **update.get("$setOnInsert", {})}
            self.docs[filt["_id"]] = doc
        for field, amount in update["$inc"].items():
            doc[field] = doc.get(field, 0) + amount
        return dict(doc)


def test_requests_over_budget_are_refused_until_window_ends():
    limiter = RateLimiter(FakeBuckets(), limit=3, window_seconds=60)
    results = [limiter.hit("1.2.3.4", now=120 + i) for i in range(4)]
    assert [allowed for allowed, _ in results] == [True, True, True, False]
    assert results[-1][1] == 57
    assert limiter.hit("1.2.3.4", now=180)[0] is True


def test_clients_are_counted_separately():
    limiter = RateLimiter(FakeBuckets(), limit=1, window_seconds=60)
    assert limiter.hit("1.1.1.1", now=0)[0]
    assert limiter.hit("2.2.2.2", now=0)[0]
    assert not limiter.hit("1.1.1.1", now=1)[0]


def test_bucket_expires_at_window_end():
    buckets = FakeBuckets()
    RateLimiter(buckets, limit=5, window_seconds=900).hit("ip", now=1000)
    doc = buckets.docs["ip:900"]
    assert doc["expiresAt"].timestamp() == 1800


def test_client_ip_prefers_forwarded_header():
    request = SimpleNamespace(headers={"x-forwarded-for": "10.0.0.1, 172.16.0.1"},
                              client=SimpleNamespace(host="127.0.0.1"))
    assert client_ip(request) == "10.0.0.1"
    request = SimpleNamespace(headers={}, client=SimpleNamespace(host="127.0.0.1"))
    assert client_ip(request) == "127.0.0.1"
