"""
Shared pytest fixtures: application, database and member factories
"""

import itertools

import pytest
from flask_jwt_extended import create_access_token

from app import create_app
from config import TestingConfig
from models import db, User, TeamMember, Position


@pytest.fixture
def app():
    app = create_app(TestingConfig)

    with app.app_context():
        yield app
        app.extensions['binary_scheduler'].stop()
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = itertools.count(1)

    def _make_user(is_admin=False, is_active=True):
        n = next(counter)
        user = User(
            username=f'member{n}',
            email=f'member{n}@example.com',
            first_name='Test',
            last_name=f'Member{n}',
            is_admin=is_admin,
            is_active=is_active
        )
        user.set_password('password123')
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def make_member(make_user):
    """Create a user with its binary node; extra keyword args set node fields"""

    def _make_member(sponsor=None, position=Position.MAIN, **fields):
        user = make_user()
        member = TeamMember.get_or_create(user.id)
        if sponsor is not None:
            member.sponsor_id = sponsor.user_id
            member.position = Position(position)
        for field, value in fields.items():
            setattr(member, field, value)
        db.session.commit()
        return member

    return _make_member


@pytest.fixture
def auth_headers(app):
    def _auth_headers(user):
        token = create_access_token(identity=str(user.id))
        return {'Authorization': f'Bearer {token}'}

    return _auth_headers


@pytest.fixture
def admin_headers(make_user, auth_headers):
    return auth_headers(make_user(is_admin=True))
