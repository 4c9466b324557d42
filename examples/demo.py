#!/usr/bin/env python3
"""
  This demo application exposes the resources declared in schema.yaml
  When chaus is installed, you can run this app:
  $ python3 demo.py [Listener-IP]

  This will run the example on http://Listener-Ip:5000/api

  - An sqlite database is created and populated
  - The people and groups collections are exposed:

    curl http://127.0.0.1:5000/api/people?name=user1*&orderBy=-age
    curl http://127.0.0.1:5000/api/people/user1?expands=group
    curl http://127.0.0.1:5000/api/groups/group_0/members
    curl -H "X-JSON-Schema: true" http://127.0.0.1:5000/api/people
"""
import asyncio
import os
import sys
from flask import Flask
import chaus
from chaus import ChausAPI, SchemaRegistry, SQLAlchemyStore, OperationRequest

SCHEMA = os.path.join(os.path.dirname(os.path.abspath(__file__)), "schema.yaml")


# Create the api endpoints
def create_api(app, api_prefix="/api"):
    registry = SchemaRegistry.from_yaml(SCHEMA)
    api = ChausAPI(app, registry, prefix=api_prefix, store_factory=SQLAlchemyStore)
    api.expose_all()
    return api


async def populate(api):
    groups = api.operations["group"]
    people = api.operations["person"]
    await groups.create(OperationRequest(body={"items": [{"name": f"group {i}"} for i in range(3)]}))
    items = [{"name": f"user{i}", "age": 20 + i % 50, "group": f"group_{i % 3}", "email": f"user{i}@example.com"} for i in range(100)]
    await people.create(OperationRequest(body={"items": items}))


def create_app(host="localhost"):
    app = Flask("demo_app")
    app.config.update(SQLALCHEMY_DATABASE_URI="sqlite://")
    chaus.DB.init_app(app)

    with app.app_context():
        chaus.DB.create_all()
        api = create_api(app)
        # Populate the db with users in 3 groups
        asyncio.run(populate(api))

    return app


# Address where the api will be hosted, change this if you're not running the app on localhost!
host = sys.argv[1] if sys.argv[1:] else "127.0.0.1"
app = create_app(host=host)

if __name__ == "__main__":
    app.run(host=host)
