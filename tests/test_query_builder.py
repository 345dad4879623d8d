import unittest
from urllib.parse import parse_qsl, urlsplit

from smsbridge.api.query import (
    METHOD_FETCH,
    METHOD_SEND,
    Credentials,
    QueryBuilder,
    build_request_url,
)


BASE = "https://api.example/rest.php"


class TestQueryBuilder(unittest.TestCase):
    def test_params_keep_order_and_credentials_are_appended(self) -> None:
        url = build_request_url(
            base_url=BASE,
            credentials=Credentials(username="user@example.com", password="p&ss w"),
            method=METHOD_FETCH,
            params=[("from", "2024-01-01"), ("to", "2024-03-31"), ("type", "1"), ("did", "5145550100")],
        )
        self.assertEqual(
            url,
            BASE
            + "?from=2024-01-01&to=2024-03-31&type=1&did=5145550100"
            + "&api_username=user%40example.com&api_password=p%26ss+w&method=getSMS",
        )

    def test_url_shape(self) -> None:
        params = [("did", "1"), ("dst", "5145550199"), ("message", "a&b=c d")]
        url = build_request_url(
            base_url=BASE,
            credentials=Credentials(username="u", password="p"),
            method=METHOD_SEND,
            params=params,
        )
        self.assertTrue(url.startswith(BASE + "?"))
        self.assertEqual(url.count("?"), 1)
        self.assertFalse(url.endswith("&"))
        self.assertNotIn("&&", url)

        query = urlsplit(url).query
        self.assertEqual(len(query.split("&")), len(params) + 3)
        self.assertEqual(
            parse_qsl(query),
            params + [("api_username", "u"), ("api_password", "p"), ("method", "sendSMS")],
        )

    def test_builder_without_params_returns_base(self) -> None:
        self.assertEqual(QueryBuilder(base_url=BASE).build(), BASE)

    def test_builder_rejects_base_with_query(self) -> None:
        with self.assertRaises(ValueError):
            QueryBuilder(base_url=BASE + "?x=1")
        with self.assertRaises(ValueError):
            QueryBuilder(base_url="api.example/rest.php")

    def test_rejects_empty_key_and_unknown_method(self) -> None:
        with self.assertRaises(ValueError):
            QueryBuilder(base_url=BASE).add("", "v")
        with self.assertRaises(ValueError):
            build_request_url(
                base_url=BASE,
                credentials=Credentials(username="u", password="p"),
                method="getCDR",
                params=[],
            )


if __name__ == "__main__":
    unittest.main()
