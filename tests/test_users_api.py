from helpers import T0, make_player
from models import Comment, Lobby, LobbyStatus, Segment, Story

PNG = "iVBORw0KGgo="


def test_register_login_me(client, db):
    resp = client.post("/auth/register", json={
        "email": "ann@example.com",
        "username": "ann",
        "password": "secret1",
        "first_name": "Ann",
        "last_name": "Lee",
        "avatar": "Girl2",
    })
    assert resp.status_code == 201
    body = resp.json()
    assert "password" not in body
    assert body["avatar"] == "Girl2"

    again = client.post("/auth/register", json={
        "email": "ann@example.com", "username": "ann2", "password": "secret1",
    })
    assert again.status_code == 400

    bad = client.post("/auth/login", json={"email": "ann@example.com", "password": "wrong!"})
    assert bad.status_code == 401

    token = client.post("/auth/login", json={
        "email": "ann@example.com", "password": "secret1",
    }).json()["access_token"]
    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["user_id"] == body["user_id"]


def test_register_rejects_broken_image(client):
    resp = client.post("/auth/register", json={
        "email": "bob@example.com", "username": "bob", "password": "secret1",
        "image_data": "not base64 at all!",
    })
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Failed to encode data"


def test_bad_token(client):
    resp = client.get("/auth/me", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401


def test_list_users_excludes_me(client, make_user):
    _, headers = make_user("zoe")
    make_user("bob", first_name="Robert", last_name="Stone")
    make_user("amy")

    names = [u["username"] for u in client.get("/users/", headers=headers).json()]
    assert names == ["amy", "bob"]

    found = client.get("/users/", params={"q": "robert st"}, headers=headers).json()
    assert [u["username"] for u in found] == ["bob"]


def test_profile_image_fans_out(client, db, make_user):
    uid, headers = make_user("ann")
    other, _ = make_user("ben")

    joined = Lobby(lobby_id="l1", host_id=uid, title="Mine",
                   players={uid: make_player("ann"), other: make_player("ben", minutes=1)})
    foreign = Lobby(lobby_id="l2", host_id=other, title="Not mine",
                    players={other: make_player("ben")})
    db.collection("lobbies").document("l1").set(joined.model_dump())
    db.collection("lobbies").document("l2").set(foreign.model_dump())

    mine = Comment(comment_id="c1", lobby_id="l2", user_id=uid, username="ann", content="hi")
    theirs = Comment(comment_id="c2", lobby_id="l2", user_id=other, username="ben", content="yo")
    comments = db.collection("story_comments").document("l2").collection("comments")
    comments.document("c1").set(mine.model_dump())
    comments.document("c2").set(theirs.model_dump())

    resp = client.put("/users/me/image", json={"image_data": f"data:image/jpeg;base64,{PNG}"},
                      headers=headers)
    assert resp.status_code == 200
    assert resp.json()["image_data"] == PNG

    assert db.collection("users").document(uid).get().to_dict()["image_data"] == PNG
    l1 = db.collection("lobbies").document("l1").get().to_dict()
    assert l1["players"][uid]["image_data"] == PNG
    assert l1["players"][other]["image_data"] is None
    assert comments.document("c1").get().to_dict()["image_data"] == PNG
    assert comments.document("c2").get().to_dict()["image_data"] is None

    # всё записано одним batch
    assert len(db.batches) == 1
    assert len(db.batches[0].ops) == 3


def test_profile_image_must_be_base64(client, db, make_user):
    uid, headers = make_user("ann")
    resp = client.put("/users/me/image", json={"image_data": "@@@"}, headers=headers)
    assert resp.status_code == 400
    assert db.collection("users").document(uid).get().to_dict()["image_data"] is None
    assert db.batches == []


def test_stats(client, db, make_user):
    uid, _ = make_user("ann")
    lobby = Lobby(
        lobby_id="s1", host_id=uid, title="Tale", status=LobbyStatus.completed,
        players={uid: make_player("ann"), "uid-ben": make_player("ben", minutes=1)},
        story=Story(content="a\n\nb\n\nc", current_turn=uid, last_updated=T0, segments=[
            Segment(author_id=uid, content="a"),
            Segment(author_id="uid-ben", content="b"),
            Segment(author_id=uid, content="c"),
        ]),
    )
    db.collection("lobbies").document("s1").set(lobby.model_dump())

    stats = client.get(f"/users/{uid}/stats").json()
    assert stats["stories_count"] == 1
    assert stats["contributions_count"] == 2
    assert stats["recent_stories"][0]["lobby_id"] == "s1"


def test_unknown_user(client):
    assert client.get("/users/nobody").status_code == 404
