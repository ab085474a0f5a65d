import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from bson import ObjectId

from conftest import LONG_CONTENT, as_principal
from errors import NotFound


@pytest.fixture
def post(posts, alice):
    return posts.create(as_principal(alice), {"title": "Hello", "content": LONG_CONTENT})


def test_toggle_twice_restores_likes(posts, post, bob):
    uid = str(bob["_id"])
    liked, now_liked = posts.toggle_like(post, uid)
    assert now_liked is True
    assert liked["likes"] == [uid]

    unliked, now_liked = posts.toggle_like(liked, uid)
    assert now_liked is False
    assert unliked["likes"] == post["likes"] == []


def test_concurrent_likes_from_stale_snapshots_are_both_kept(posts, post, alice, bob):
    # both requests loaded the post before either like was written
    snapshot_a = posts.get(post["_id"])
    snapshot_b = posts.get(post["_id"])

    posts.toggle_like(snapshot_a, str(alice["_id"]))
    posts.toggle_like(snapshot_b, str(bob["_id"]))

    final = posts.get(post["_id"])
    assert sorted(final["likes"]) == sorted([str(alice["_id"]), str(bob["_id"])])
    assert posts.present_one(final)["like_count"] == 2


def test_threaded_likes_from_one_snapshot_all_land(posts, post):
    snapshot = posts.get(post["_id"])
    user_ids = [f"user-{i}" for i in range(8)]
    barrier = threading.Barrier(len(user_ids))

    def like(uid):
        barrier.wait()
        return posts.toggle_like(snapshot, uid)[1]

    with ThreadPoolExecutor(max_workers=len(user_ids)) as pool:
        results = list(pool.map(like, user_ids))

    assert all(results)
    assert sorted(posts.get(post["_id"])["likes"]) == sorted(user_ids)


def test_stale_snapshot_does_not_turn_unlike_into_like(posts, post, bob):
    uid = str(bob["_id"])
    stale = posts.get(post["_id"])
    posts.toggle_like(stale, uid)
    # the snapshot still shows an empty like set, but the user already likes it
    doc, now_liked = posts.toggle_like(stale, uid)
    assert now_liked is False
    assert doc["likes"] == []


def test_like_missing_post(posts, bob):
    with pytest.raises(NotFound):
        posts.toggle_like({"_id": ObjectId()}, str(bob["_id"]))


def test_comment_likes_share_the_toggle(comments, post, alice, bob):
    comment = comments.create(as_principal(alice), post["_id"], "Nice post")
    doc, liked = comments.toggle_like(comment, str(bob["_id"]))
    assert liked and doc["likes"] == [str(bob["_id"])]
    doc, liked = comments.toggle_like(doc, str(bob["_id"]))
    assert not liked and doc["likes"] == []


def test_soft_deleted_comment_cannot_be_liked(comments, post, alice, bob):
    comment = comments.create(as_principal(alice), post["_id"], "Nice post")
    comments.soft_delete(comment)
    with pytest.raises(NotFound):
        comments.toggle_like(comment, str(bob["_id"]))
