"""Shared fixtures: an app bound to an in-memory SQLite database per test."""
import pytest

from app import create_app
from models import db, User, UserDetail, Post, Comment


@pytest.fixture
def app(tmp_path):
    app = create_app('testing')
    app.config['UPLOAD_FOLDER'] = str(tmp_path / 'images')

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make_user(username, user_name=None, name=None):
        """Create a user, with a profile row when ``user_name`` is given"""
        user = User(username=username, password_hash='not-a-real-hash')
        db.session.add(user)
        db.session.flush()
        if user_name:
            db.session.add(UserDetail(user_id=user.id, user_name=user_name, name=name or user_name))
        db.session.commit()
        return user.id
    return _make_user


@pytest.fixture
def make_post(app):
    def _make_post(user_id, content='hello world', title='Hello'):
        post = Post(user_id=user_id, title=title, content=content)
        db.session.add(post)
        db.session.commit()
        return post.id
    return _make_post


@pytest.fixture
def make_comment(app):
    def _make_comment(user_id, post_id, content='nice post'):
        comment = Comment(user_id=user_id, post_id=post_id, content=content)
        db.session.add(comment)
        db.session.commit()
        return comment.id
    return _make_comment
