import unittest

from sqlalchemy import create_engine, inspect
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import class_mapper
from sqlalchemy.schema import CreateTable

# Import the package to trigger registry
from data_models import (
    Base,
    EmailEvent,
    EmailMessage,
    Event,
    IdentityLink,
    Person,
    PersonFeatures,
    Segment,
    SegmentMembership,
    Subscription,
)

# SQLite is used for structural checks only. JSON columns switch to JSONB on
# Postgres, which is compiled (not executed) below.


class TestSchemaDefinitions(unittest.TestCase):
    def test_mappers_configure(self):
        for model in (Person, IdentityLink, Event, EmailMessage, EmailEvent,
                      Subscription, PersonFeatures, Segment, SegmentMembership):
            class_mapper(model)

    def test_create_all_on_sqlite(self):
        engine = create_engine("sqlite:///:memory:")
        Base.metadata.create_all(engine)

        tables = set(inspect(engine).get_table_names())
        self.assertTrue({
            "person", "identity_link", "event", "email_message", "email_event",
            "subscription", "person_features", "segment", "segment_membership",
        } <= tables)

    def test_postgres_ddl_uses_jsonb(self):
        ddl = str(CreateTable(Event.__table__).compile(dialect=postgresql.dialect()))
        self.assertIn("JSONB", ddl)
        self.assertIn("TIMESTAMP WITH TIME ZONE", ddl)

    def test_identity_link_is_unique_per_provider(self):
        constraints = {c.name for c in IdentityLink.__table__.constraints}
        self.assertIn("uq_identity_link_provider_external", constraints)


if __name__ == '__main__':
    unittest.main()
