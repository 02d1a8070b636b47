"""Tests for the object, location and category services and object listing.

Copyright (c) Bryn Gwalad 2025
"""

import os
import sys
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import unittest

from pydantic import ValidationError
from sqlmodel import col

from api import categories, locations, objects
from api.auth import Identity
from api.errors import Conflict, InvalidInput, NotFound, UploadFailed
from api.listing import ObjectFilters
from api.models import (
    CategoryInput,
    LocationInput,
    ObjectHistory,
    ObjectInput,
    User,
)
from api.uploads import ImageStore, StoredImage
from utils.database import Store


class RecordingImageStore(ImageStore):
    def __init__(self, fail=False):
        self.fail = fail
        self.uploads = []
        self.deleted = []

    def upload(self, content, filename, content_type):
        if self.fail:
            raise UploadFailed()
        image_id = f"img-{len(self.uploads) + 1}"
        self.uploads.append((image_id, content))
        return StoredImage(id=image_id, url=f"https://images.test/{image_id}")

    def delete(self, image_id):
        self.deleted.append(image_id)


class ServiceTestCase(unittest.TestCase):
    def setUp(self):
        self.store = Store("sqlite://")
        self.store.init_schema()
        self.addCleanup(self.store.dispose)
        self.alex = self._user("Alex", "alex@example.com", "admin")
        self.sam = self._user("Sam", "sam@example.com", "member")

    def _user(self, name, email, role):
        with self.store.transaction() as session:
            user = self.store.save(session, User(name=name, email=email, password_hash="x", role=role))
        return Identity(id=user.id, email=user.email, role=user.role)

    def location(self, name, **kwargs):
        return locations.create_location(self.store, LocationInput(name=name, **kwargs))

    def category(self, name, **kwargs):
        return categories.create_category(self.store, CategoryInput(name=name, **kwargs))

    def obj(self, name, user=None, **kwargs):
        return objects.create_object(self.store, ObjectInput(name=name, **kwargs), user or self.alex)

    def history_rows(self, object_id):
        with self.store.transaction() as session:
            return self.store.count(session, ObjectHistory, col(ObjectHistory.object_id) == object_id)


class ObjectServiceTest(ServiceTestCase):
    def test_create_sets_owner_and_denormalized_fields(self):
        garage = self.location("Garage")
        tools = self.category("Tools", color="#EF4444")
        drill = self.obj("Drill", description="Cordless", category_id=tools["id"], location_id=garage["id"])

        self.assertEqual(drill["added_by"], self.alex.id)
        self.assertEqual(drill["added_by_name"], "Alex")
        self.assertEqual(drill["category_name"], "Tools")
        self.assertEqual(drill["category_color"], "#EF4444")
        self.assertEqual(drill["location_name"], "Garage")
        self.assertIsNone(drill["photo_url"])

    def test_create_requires_name(self):
        with self.assertRaises(InvalidInput):
            self.obj("")
        with self.assertRaises(InvalidInput):
            self.obj("   ")

    def test_create_rejects_unknown_references(self):
        with self.assertRaises(InvalidInput):
            self.obj("Drill", category_id=999)
        with self.assertRaises(InvalidInput):
            self.obj("Drill", location_id=999)

    def test_move_writes_one_history_row(self):
        garage = self.location("Garage")
        attic = self.location("Attic")
        drill = self.obj("Drill", location_id=garage["id"])

        updated = objects.update_object(
            self.store, drill["id"], ObjectInput(name="Drill", location_id=attic["id"], notes="winter"), self.sam
        )

        self.assertEqual(updated["location_id"], attic["id"])
        history = objects.get_object(self.store, drill["id"])["history"]
        self.assertEqual(len(history), 1)
        move = history[0]
        self.assertEqual(move["from_location_id"], garage["id"])
        self.assertEqual(move["to_location_id"], attic["id"])
        self.assertEqual(move["from_location_name"], "Garage")
        self.assertEqual(move["to_location_name"], "Attic")
        self.assertEqual(move["moved_by"], self.sam.id)
        self.assertEqual(move["moved_by_name"], "Sam")
        self.assertEqual(move["notes"], "winter")

    def test_same_location_writes_no_history(self):
        garage = self.location("Garage")
        drill = self.obj("Drill", location_id=garage["id"])
        objects.update_object(self.store, drill["id"], ObjectInput(name="Drill", location_id=garage["id"]), self.alex)
        self.assertEqual(self.history_rows(drill["id"]), 0)

    def test_omitted_location_keeps_current_location(self):
        garage = self.location("Garage")
        drill = self.obj("Drill", location_id=garage["id"])
        updated = objects.update_object(self.store, drill["id"], ObjectInput(name="Hammer drill"), self.alex)
        self.assertEqual(updated["location_id"], garage["id"])
        self.assertEqual(updated["name"], "Hammer drill")
        self.assertEqual(self.history_rows(drill["id"]), 0)

    def test_explicit_null_location_is_a_move(self):
        garage = self.location("Garage")
        drill = self.obj("Drill", location_id=garage["id"])
        updated = objects.update_object(self.store, drill["id"], ObjectInput(name="Drill", location_id=None), self.alex)
        self.assertIsNone(updated["location_id"])
        history = objects.get_object(self.store, drill["id"])["history"]
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0]["from_location_id"], garage["id"])
        self.assertIsNone(history[0]["to_location_id"])

    def test_first_placement_is_recorded(self):
        garage = self.location("Garage")
        drill = self.obj("Drill")
        objects.update_object(self.store, drill["id"], ObjectInput(name="Drill", location_id=garage["id"]), self.alex)
        history = objects.get_object(self.store, drill["id"])["history"]
        self.assertIsNone(history[0]["from_location_id"])
        self.assertEqual(history[0]["to_location_id"], garage["id"])

    def test_history_is_newest_first(self):
        a, b, c = self.location("A"), self.location("B"), self.location("C")
        drill = self.obj("Drill", location_id=a["id"])
        for target in (b, c):
            objects.update_object(self.store, drill["id"], ObjectInput(name="Drill", location_id=target["id"]), self.alex)
        history = objects.get_object(self.store, drill["id"])["history"]
        self.assertEqual([h["to_location_id"] for h in history], [c["id"], b["id"]])

    def test_update_replaces_fields_and_keeps_owner(self):
        tools = self.category("Tools")
        drill = self.obj("Drill", description="Cordless", category_id=tools["id"], photo_url="https://x/1")
        updated = objects.update_object(self.store, drill["id"], ObjectInput(name="Drill"), self.sam)

        self.assertIsNone(updated["description"])
        self.assertIsNone(updated["category_id"])
        self.assertIsNone(updated["photo_url"])
        self.assertEqual(updated["added_by"], self.alex.id)
        self.assertGreaterEqual(updated["updated_at"], drill["updated_at"])

    def test_update_errors(self):
        with self.assertRaises(NotFound):
            objects.update_object(self.store, 999, ObjectInput(name="Drill"), self.alex)
        drill = self.obj("Drill")
        with self.assertRaises(InvalidInput):
            objects.update_object(self.store, drill["id"], ObjectInput(name=""), self.alex)
        with self.assertRaises(InvalidInput):
            objects.update_object(self.store, drill["id"], ObjectInput(name="Drill", location_id=999), self.alex)

    def test_failed_move_leaves_no_trace(self):
        garage = self.location("Garage")
        drill = self.obj("Drill", location_id=garage["id"])
        with self.assertRaises(InvalidInput):
            objects.update_object(
                self.store, drill["id"], ObjectInput(name="Drill", location_id=garage["id"] + 100), self.alex
            )
        self.assertEqual(self.history_rows(drill["id"]), 0)
        self.assertEqual(objects.get_object(self.store, drill["id"])["object"]["location_id"], garage["id"])

    def test_get_and_delete(self):
        garage, attic = self.location("Garage"), self.location("Attic")
        drill = self.obj("Drill", location_id=garage["id"])
        objects.update_object(self.store, drill["id"], ObjectInput(name="Drill", location_id=attic["id"]), self.alex)

        objects.delete_object(self.store, drill["id"])

        with self.assertRaises(NotFound):
            objects.get_object(self.store, drill["id"])
        with self.assertRaises(NotFound):
            objects.delete_object(self.store, drill["id"])
        self.assertEqual(self.history_rows(drill["id"]), 0)

    def test_attach_photo_after_upload(self):
        images = RecordingImageStore()
        drill = self.obj("Drill")
        updated = objects.attach_photo(self.store, images, drill["id"], b"PNGDATA", "drill.png", "image/png")
        self.assertEqual(updated["photo_url"], "https://images.test/img-1")
        self.assertEqual(images.uploads, [("img-1", b"PNGDATA")])

    def test_attach_photo_upload_failure_leaves_object_untouched(self):
        drill = self.obj("Drill", photo_url="https://images.test/old")
        with self.assertRaises(UploadFailed):
            objects.attach_photo(self.store, RecordingImageStore(fail=True), drill["id"], b"PNG", "a.png", "image/png")
        stored = objects.get_object(self.store, drill["id"])["object"]
        self.assertEqual(stored["photo_url"], "https://images.test/old")
        self.assertEqual(stored["updated_at"], drill["updated_at"])

    def test_attach_photo_to_missing_object_skips_upload(self):
        images = RecordingImageStore()
        with self.assertRaises(NotFound):
            objects.attach_photo(self.store, images, 999, b"PNG", "a.png", "image/png")
        self.assertEqual(images.uploads, [])


class ListingTest(ServiceTestCase):
    def setUp(self):
        super().setUp()
        self.tools = self.category("Tools")
        self.kitchen = self.category("Kitchen Items")
        self.garage = self.location("Garage")
        self.attic = self.location("Attic")
        self.drill = self.obj("Drill", description="Foo brand", category_id=self.tools["id"], location_id=self.garage["id"])
        self.saw = self.obj("Saw", category_id=self.tools["id"], location_id=self.attic["id"])
        self.pan = self.obj("Frying pan", description="Cast iron, from FOOD fair", category_id=self.kitchen["id"])
        self.loose = self.obj("Box of 100% cotton rags")

    def names(self, **filters):
        return [o["name"] for o in objects.list_objects(self.store, ObjectFilters(**filters))]

    def test_no_filters_lists_everything_newest_first(self):
        self.assertEqual(self.names(), ["Box of 100% cotton rags", "Frying pan", "Saw", "Drill"])

    def test_update_moves_object_to_front(self):
        objects.update_object(self.store, self.drill["id"], ObjectInput(name="Drill"), self.alex)
        self.assertEqual(self.names()[0], "Drill")

    def test_category_filter(self):
        self.assertEqual(sorted(self.names(category=self.tools["id"])), ["Drill", "Saw"])
        self.assertEqual(self.names(category=self.kitchen["id"]), ["Frying pan"])

    def test_location_filter(self):
        self.assertEqual(self.names(location=self.attic["id"]), ["Saw"])

    def test_search_is_case_insensitive_over_name_or_description(self):
        self.assertEqual(sorted(self.names(search="foo")), ["Drill", "Frying pan"])
        self.assertEqual(self.names(search="PAN"), ["Frying pan"])
        self.assertEqual(self.names(search="nothing like this"), [])

    def test_search_treats_wildcards_literally(self):
        self.assertEqual(self.names(search="100%"), ["Box of 100% cotton rags"])
        self.assertEqual(self.names(search="_"), [])

    def test_filters_compose(self):
        self.assertEqual(self.names(category=self.tools["id"], search="foo"), ["Drill"])
        self.assertEqual(self.names(category=self.tools["id"], location=self.attic["id"]), ["Saw"])
        self.assertEqual(self.names(category=self.kitchen["id"], location=self.garage["id"]), [])

    def test_search_folds_case_beyond_ascii(self):
        tin = self.obj("Éclair tin", description="Über box")
        self.obj("Eclair recipe")
        found = objects.list_objects(self.store, ObjectFilters(search="éclair"))
        self.assertEqual([o["id"] for o in found], [tin["id"]])
        self.assertEqual(self.names(search="ÜBER"), ["Éclair tin"])
        self.assertEqual(self.names(search="über BOX"), ["Éclair tin"])

    def test_blank_search_is_ignored(self):
        self.assertEqual(len(self.names(search="  ")), 4)

    def test_rows_are_denormalized(self):
        row = objects.list_objects(self.store, ObjectFilters(location=self.garage["id"]))[0]
        self.assertEqual(row["category_name"], "Tools")
        self.assertEqual(row["location_name"], "Garage")
        self.assertEqual(row["added_by_name"], "Alex")


class LocationServiceTest(ServiceTestCase):
    def test_list_orders_by_name_with_counts(self):
        garage = self.location("Garage")
        self.location("Attic")
        self.obj("Drill", location_id=garage["id"])
        self.obj("Saw", location_id=garage["id"])

        listed = locations.list_locations(self.store)
        self.assertEqual([loc["name"] for loc in listed], ["Attic", "Garage"])
        self.assertEqual([loc["object_count"] for loc in listed], [0, 2])

    def test_get_includes_objects(self):
        garage = self.location("Garage", description="Attached", address="1 Main St")
        tools = self.category("Tools")
        self.obj("Saw", location_id=garage["id"], category_id=tools["id"])
        self.obj("Drill", location_id=garage["id"])
        self.obj("Pan")

        result = locations.get_location(self.store, garage["id"])
        self.assertEqual(result["location"]["address"], "1 Main St")
        self.assertEqual([o["name"] for o in result["objects"]], ["Drill", "Saw"])
        self.assertEqual(result["objects"][1]["category_name"], "Tools")
        with self.assertRaises(NotFound):
            locations.get_location(self.store, 999)

    def test_create_requires_name(self):
        with self.assertRaises(InvalidInput):
            locations.create_location(self.store, LocationInput(description="nameless"))

    def test_update(self):
        garage = self.location("Garage", description="Attached")
        updated = locations.update_location(self.store, garage["id"], LocationInput(name="Big garage"))
        self.assertEqual(updated["name"], "Big garage")
        self.assertIsNone(updated["description"])
        self.assertGreaterEqual(updated["updated_at"], garage["updated_at"])
        with self.assertRaises(NotFound):
            locations.update_location(self.store, 999, LocationInput(name="x"))

    def test_delete_empty_location(self):
        garage = self.location("Garage")
        locations.delete_location(self.store, garage["id"])
        with self.assertRaises(NotFound):
            locations.get_location(self.store, garage["id"])
        with self.assertRaises(NotFound):
            locations.delete_location(self.store, garage["id"])

    def test_delete_location_with_objects_conflicts(self):
        garage = self.location("Garage")
        drill = self.obj("Drill", location_id=garage["id"])

        with self.assertRaises(Conflict):
            locations.delete_location(self.store, garage["id"])

        self.assertEqual(locations.get_location(self.store, garage["id"])["location"]["name"], "Garage")
        self.assertEqual(objects.get_object(self.store, drill["id"])["object"]["location_id"], garage["id"])


class CategoryServiceTest(ServiceTestCase):
    def test_create_defaults_color(self):
        self.assertEqual(self.category("Tools")["color"], "#3B82F6")
        self.assertEqual(self.category("Garden", color="#10B981")["color"], "#10B981")

    def test_name_required(self):
        with self.assertRaises(InvalidInput):
            categories.create_category(self.store, CategoryInput(color="#10B981"))

    def test_invalid_color_rejected(self):
        with self.assertRaises(ValidationError):
            CategoryInput(name="Tools", color="blue")

    def test_duplicate_name_conflicts(self):
        self.category("Tools")
        with self.assertRaises(Conflict):
            self.category("Tools")
        self.assertEqual(self.category("tools")["name"], "tools")

    def test_update(self):
        tools = self.category("Tools")
        garden = self.category("Garden")
        renamed = categories.update_category(self.store, tools["id"], CategoryInput(name="Tools", color="#000000"))
        self.assertEqual(renamed["color"], "#000000")
        with self.assertRaises(Conflict):
            categories.update_category(self.store, garden["id"], CategoryInput(name="Tools"))
        with self.assertRaises(NotFound):
            categories.update_category(self.store, 999, CategoryInput(name="Other"))

    def test_list_orders_by_name_with_counts(self):
        tools = self.category("Tools")
        self.category("Garden")
        self.obj("Drill", category_id=tools["id"])
        listed = categories.list_categories(self.store)
        self.assertEqual([(c["name"], c["object_count"]) for c in listed], [("Garden", 0), ("Tools", 1)])

    def test_delete_clears_objects_category(self):
        tools = self.category("Tools")
        garage = self.location("Garage")
        drill = self.obj("Drill", description="Cordless", category_id=tools["id"], location_id=garage["id"])

        categories.delete_category(self.store, tools["id"])

        stored = objects.get_object(self.store, drill["id"])["object"]
        self.assertIsNone(stored["category_id"])
        self.assertIsNone(stored["category_name"])
        self.assertEqual(stored["description"], "Cordless")
        self.assertEqual(stored["location_id"], garage["id"])
        with self.assertRaises(NotFound):
            categories.delete_category(self.store, tools["id"])


class ScenarioTest(ServiceTestCase):
    def test_garage_to_attic(self):
        garage = self.location("Garage")
        drill = self.obj("Drill", location_id=garage["id"])
        attic = self.location("Attic")

        objects.update_object(self.store, drill["id"], ObjectInput(name="Drill", location_id=attic["id"]), self.alex)

        history = objects.get_object(self.store, drill["id"])["history"]
        self.assertEqual(len(history), 1)
        self.assertEqual((history[0]["from_location_name"], history[0]["to_location_name"]), ("Garage", "Attic"))

        locations.delete_location(self.store, garage["id"])
        history = objects.get_object(self.store, drill["id"])["history"]
        self.assertIsNone(history[0]["from_location_id"])


if __name__ == "__main__":
    unittest.main()
