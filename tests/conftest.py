"""Test configuration and shared fixtures."""

import itertools

import pytest
from flask_jwt_extended import create_access_token

from app import create_app
from models import db, User

ASSOCIATION_NAME = "Culiram Abaca Growers Association"

_counter = itertools.count(1)


@pytest.fixture
def app():
    """A fresh application backed by an in-memory database."""
    app = create_app('testing')
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    """Create a user and return its id. Verified unless told otherwise."""
    def _make(role='farmer', email=None, verified=True, password='password123', **fields):
        n = next(_counter)
        with app.app_context():
            user = User(
                email=email or f"{role}{n}@example.ph",
                full_name=fields.pop('full_name', f"Test {role.replace('_', ' ').title()} {n}"),
                role=role,
                **fields
            )
            user.set_password(password)
            if verified:
                user.mark_verified(None)
            db.session.add(user)
            db.session.commit()
            return user.id
    return _make


@pytest.fixture
def auth_headers(app):
    def _headers(user_id):
        with app.app_context():
            token = create_access_token(identity=str(user_id))
        return {'Authorization': f'Bearer {token}'}
    return _headers


@pytest.fixture
def super_admin(make_user):
    return make_user('officer', full_name='Super Admin', is_super_admin=True)


@pytest.fixture
def officer(make_user):
    return make_user('officer', full_name='Maria Santos')


@pytest.fixture
def association(make_user):
    return make_user('association_officer', association_name=ASSOCIATION_NAME)


@pytest.fixture
def farmer(make_user):
    return make_user(
        'farmer',
        full_name='Pedro Reyes',
        association_name=ASSOCIATION_NAME,
        municipality='Culiram',
        barangay='Poblacion',
        contact_number='09171234567',
        farm_area_hectares=2.0
    )


@pytest.fixture
def buyer(make_user):
    return make_user('buyer', business_name='Mindanao Fiber Trading', business_address='Butuan City')


@pytest.fixture
def fetch(app):
    """Load a row inside an app context and return its ``to_dict()``."""
    def _fetch(model, id):
        with app.app_context():
            row = db.session.get(model, id)
            return row.to_dict() if row else None
    return _fetch
