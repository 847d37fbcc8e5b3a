import json
import os
import tempfile
import unittest

from dbsync.config.loader import load_config
from dbsync.models.config import SyncMode


class TestLoadConfig(unittest.TestCase):
    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.path = os.path.join(tmp.name, "config.json")
        self.data = {
            "source": {"type": "mysql", "host": "10.0.0.5", "port": 3306, "user": "app",
                       "password": "secret", "database": "shop"},
            "target": {"type": "sqlite", "host": "/tmp/mirror.db", "database": "main"},
            "tables": ["users", "orders", "users"],
        }

    def write(self, content):
        with open(self.path, "w", encoding="utf-8") as f:
            f.write(content if isinstance(content, str) else json.dumps(content))

    def test_defaults(self):
        self.write(self.data)

        request, options = load_config(self.path)

        self.assertEqual(request.tables, ("users", "orders"))
        self.assertEqual(request.mode, SyncMode.INSERT_UPDATE)
        self.assertEqual(request.source.username, "app")
        self.assertEqual(request.source_database, "shop")
        self.assertEqual(request.target_database, "main")
        self.assertEqual((options.batch_size, options.retry_times), (500, 1))

    def test_optional_fields(self):
        self.data.update({"mode": "insert_only", "batch_size": 100, "retry_times": 2, "retry_interval": 0.5})
        self.write(self.data)

        request, options = load_config(self.path)

        self.assertEqual(request.mode, SyncMode.INSERT_ONLY)
        self.assertEqual((options.batch_size, options.retry_times, options.retry_interval), (100, 2, 0.5))

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_config(self.path)

    def test_invalid_json(self):
        self.write("{not json")
        with self.assertRaises(ValueError):
            load_config(self.path)

    def test_missing_tables(self):
        del self.data["tables"]
        self.write(self.data)
        with self.assertRaises(ValueError):
            load_config(self.path)

    def test_invalid_values(self):
        for field, value in (("mode", "mirror"), ("batch_size", 0)):
            with self.subTest(field=field):
                data = dict(self.data, **{field: value})
                self.write(data)
                with self.assertRaises(ValueError):
                    load_config(self.path)


if __name__ == "__main__":
    unittest.main()
