import pytest
from sqlalchemy.exc import IntegrityError

from models import db, Follower
from routes import follows


def follow(client, user_id, target_id):
    return client.post('/follows', json={"user_id": user_id, "following_user_id": target_id})


def edges(user_id, target_id):
    return Follower.query.filter_by(user_id=user_id, following_user_id=target_id).all()


def test_follow_twice_keeps_one_active_edge(client, make_user):
    alice = make_user('alice@example.com')
    bob = make_user('bob@example.com')

    first = follow(client, alice, bob)
    second = follow(client, alice, bob)

    assert first.status_code == 200
    assert second.status_code == 200
    assert first.get_json()["id"] == second.get_json()["id"]
    rows = edges(alice, bob)
    assert len(rows) == 1
    assert rows[0].following is True


def test_unfollow_then_follow_reactivates_same_row(client, make_user):
    alice = make_user('alice@example.com')
    bob = make_user('bob@example.com')

    edge_id = follow(client, alice, bob).get_json()["id"]
    response = client.put(f'/follows/{alice}/{bob}')
    assert response.status_code == 200
    assert response.get_json() == {"message": "Successfully unfollowed"}
    assert edges(alice, bob)[0].following is False

    again = follow(client, alice, bob).get_json()
    assert again["id"] == edge_id
    assert again["following"] is True
    assert len(edges(alice, bob)) == 1


def test_unfollow_without_edge_is_a_noop(client, make_user):
    alice = make_user('alice@example.com')
    bob = make_user('bob@example.com')

    response = client.put(f'/follows/{alice}/{bob}')

    assert response.status_code == 200
    assert Follower.query.count() == 0


def test_counts_track_active_edges(client, make_user):
    alice = make_user('alice@example.com')
    bob = make_user('bob@example.com')
    carol = make_user('carol@example.com')

    follow(client, alice, bob)
    follow(client, carol, bob)
    assert client.get(f'/follows/count/{bob}').get_json() == {"following": 0, "follower": 2}
    assert client.get(f'/follows/count/{alice}').get_json() == {"following": 1, "follower": 0}

    client.put(f'/follows/{alice}/{bob}')
    assert client.get(f'/follows/count/{bob}').get_json() == {"following": 0, "follower": 1}
    assert client.get(f'/follows/count/{alice}').get_json() == {"following": 0, "follower": 0}


def test_relationship_status(client, make_user):
    alice = make_user('alice@example.com')
    bob = make_user('bob@example.com')

    assert client.get(f'/follows/{alice}/{bob}').get_json() == {"following": False}
    assert follows.get_relationship_status(alice, bob) is None

    follow(client, alice, bob)
    assert client.get(f'/follows/{alice}/{bob}').get_json() == {"following": True}

    client.put(f'/follows/{alice}/{bob}')
    assert client.get(f'/follows/{alice}/{bob}').get_json() == {"following": False}
    assert follows.get_relationship_status(alice, bob) is False


def test_not_following_lists_only_users_with_profiles(client, make_user):
    alice = make_user('alice@example.com', 'alice')
    bob = make_user('bob@example.com', 'bob')
    carol = make_user('carol@example.com', 'carol')
    make_user('dave@example.com')

    assert client.get(f'/follows/{alice}').get_json() == [{"id": bob}, {"id": carol}]

    follow(client, alice, bob)
    assert client.get(f'/follows/{alice}').get_json() == [{"id": carol}]

    follow(client, alice, carol)
    response = client.get(f'/follows/{alice}')
    assert response.status_code == 404
    assert response.get_json() == {"error": "You are already following all users"}

    client.put(f'/follows/{alice}/{bob}')
    assert client.get(f'/follows/{alice}').get_json() == [{"id": bob}]


def test_cannot_follow_yourself(client, make_user):
    alice = make_user('alice@example.com')

    response = follow(client, alice, alice)

    assert response.status_code == 400
    assert response.get_json() == {"error": "You cannot follow yourself"}
    assert Follower.query.count() == 0


def test_follow_requires_both_ids(client, make_user):
    alice = make_user('alice@example.com')

    response = client.post('/follows', json={"user_id": alice})

    assert response.status_code == 400
    assert response.get_json() == {"error": "Missing required fields"}


def test_pair_is_unique_at_the_schema_level(app, make_user):
    alice = make_user('alice@example.com')
    bob = make_user('bob@example.com')
    follows.follow(alice, bob)

    db.session.add(Follower(user_id=alice, following_user_id=bob, following=True))
    with pytest.raises(IntegrityError):
        db.session.commit()
    db.session.rollback()


def test_cannot_follow_yourself_with_a_string_id(client, make_user):
    alice = make_user('alice@example.com')

    response = client.post('/follows', json={"user_id": str(alice), "following_user_id": alice})

    assert response.status_code == 400
    assert response.get_json() == {"error": "You cannot follow yourself"}
    assert Follower.query.count() == 0


def test_string_ids_are_converted(client, make_user):
    alice = make_user('alice@example.com')
    bob = make_user('bob@example.com')

    response = client.post('/follows', json={"user_id": str(alice), "following_user_id": str(bob)})

    assert response.status_code == 200
    assert response.get_json()["user_id"] == alice
    assert len(edges(alice, bob)) == 1


def test_follow_rejects_non_numeric_ids(client, make_user):
    bob = make_user('bob@example.com')

    response = client.post('/follows', json={"user_id": "abc", "following_user_id": bob})

    assert response.status_code == 400
    assert response.get_json() == {"error": "user_id must be an integer"}
    assert Follower.query.count() == 0


def test_follow_rejects_a_json_array_body(client):
    response = client.post('/follows', json=[1, 2])

    assert response.status_code == 400
    assert response.get_json() == {"error": "Missing required fields"}


def test_follow_of_missing_user_writes_nothing(client, make_user):
    alice = make_user('alice@example.com')

    response = follow(client, alice, 999)

    assert response.status_code == 400
    assert "Constraint violated" in response.get_json()["error"]
    assert Follower.query.count() == 0
