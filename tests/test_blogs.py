from datetime import datetime, timedelta, timezone

import pytest

from blogs import followed_first, generate_blog_id, slugify_title


class TestBlogIds:

    def test_slug(self):
        assert slugify_title("Hello, World! 2024") == "Hello-World-2024"

    def test_generated_ids_are_unique(self):
        first, second = generate_blog_id("Same title"), generate_blog_id("Same title")
        assert first.startswith("Same-title")
        assert first != second


class TestFollowedFirst:

    def test_stable_partition(self):
        blogs = [{"author": "b", "n": 1}, {"author": "a", "n": 2}, {"author": "c", "n": 3}, {"author": "a", "n": 4}]
        ordered = followed_first(blogs, ["a"])
        assert [b["n"] for b in ordered] == [2, 4, 1, 3]


class TestCreateBlog:

    def test_publish_increments_post_count(self, client, db, signup, publish):
        account = signup()
        blog_id = publish(account["headers"], tags=["Python", "WEB"])
        blog = db.blogs.find_one({"blog_id": blog_id})
        assert blog["tags"] == ["python", "web"]
        assert blog["draft"] is False
        user = db.users.find_one({"personal_info.username": account["username"]})
        assert user["account_info"]["total_posts"] == 1
        assert blog["_id"] in user["blogs"]

    def test_draft_skips_validation_and_post_count(self, client, db, signup):
        account = signup()
        response = client.post("/create-blog", json={"title": "Half done", "draft": True},
                               headers=account["headers"])
        assert response.status_code == 200
        user = db.users.find_one({"personal_info.username": account["username"]})
        assert user["account_info"]["total_posts"] == 0
        assert len(user["blogs"]) == 1

    def test_description_limit(self, client, signup, publish):
        account = signup()
        publish(account["headers"], des="d" * 200)
        response = client.post("/create-blog", json={
            "title": "Too long", "des": "d" * 201, "banner": "https://images.example.com/b.png",
            "content": {"blocks": [{"type": "paragraph"}]}, "tags": ["x"],
        }, headers=account["headers"])
        assert response.status_code == 403

    @pytest.mark.parametrize("overrides", [
        {"banner": ""},
        {"content": {"blocks": []}},
        {"tags": []},
        {"tags": [f"t{i}" for i in range(11)]},
        {"title": ""},
    ])
    def test_publish_validation(self, client, signup, overrides):
        account = signup()
        payload = {"title": "Valid", "des": "desc", "banner": "https://images.example.com/b.png",
                   "content": {"blocks": [{"type": "paragraph"}]}, "tags": ["x"]}
        payload.update(overrides)
        response = client.post("/create-blog", json=payload, headers=account["headers"])
        assert response.status_code == 403
        assert "error" in response.json()

    def test_requires_token(self, client):
        response = client.post("/create-blog", json={"title": "Anonymous"})
        assert response.status_code == 401

    def test_update_keeps_author_and_id(self, client, db, signup, publish):
        account = signup()
        blog_id = publish(account["headers"])
        response = client.post("/create-blog", json={
            "id": blog_id, "title": "Renamed", "des": "new", "banner": "https://images.example.com/b.png",
            "content": {"blocks": [{"type": "paragraph"}]}, "tags": ["x"],
        }, headers=account["headers"])
        assert response.status_code == 200
        assert response.json()["id"] == blog_id
        assert db.blogs.count_documents({}) == 1
        assert db.blogs.find_one({"blog_id": blog_id})["title"] == "Renamed"

    def test_post_count_follows_publish_state(self, client, db, signup, publish):
        account = signup()
        blog_id = publish(account["headers"])

        def total_posts():
            user = db.users.find_one({"personal_info.username": account["username"]})
            return user["account_info"]["total_posts"]

        def update(draft):
            response = client.post("/create-blog", json={
                "id": blog_id, "title": "Back and forth", "des": "desc",
                "banner": "https://images.example.com/b.png",
                "content": {"blocks": [{"type": "paragraph"}]}, "tags": ["x"], "draft": draft,
            }, headers=account["headers"])
            assert response.status_code == 200

        update(draft=True)
        assert total_posts() == 0
        update(draft=False)
        assert total_posts() == 1
        update(draft=False)
        assert total_posts() == 1

        update(draft=True)
        client.post("/delete-blog", json={"blog_id": blog_id}, headers=account["headers"])
        assert total_posts() == 0

    def test_update_by_someone_else(self, client, signup, publish):
        owner = signup(email="owner@example.com")
        other = signup(email="other@example.com")
        blog_id = publish(owner["headers"])
        response = client.post("/create-blog", json={"id": blog_id, "title": "Mine now", "draft": True},
                               headers=other["headers"])
        assert response.status_code == 403


class TestGetBlog:

    def test_read_increments_counters(self, client, db, signup, publish):
        account = signup()
        blog_id = publish(account["headers"])
        response = client.post("/get-blog", json={"blog_id": blog_id})
        assert response.status_code == 200
        blog = response.json()["blog"]
        assert blog["activity"]["total_reads"] == 1
        assert blog["author"]["personal_info"]["username"] == account["username"]
        user = db.users.find_one({"personal_info.username": account["username"]})
        assert user["account_info"]["total_reads"] == 1

    def test_edit_mode_does_not_count(self, client, db, signup, publish):
        account = signup()
        blog_id = publish(account["headers"])
        client.post("/get-blog", json={"blog_id": blog_id, "mode": "edit"})
        assert db.blogs.find_one({"blog_id": blog_id})["activity"]["total_reads"] == 0

    def test_draft_requires_draft_access(self, client, signup, publish):
        account = signup()
        blog_id = publish(account["headers"], draft=True)
        rejected = client.post("/get-blog", json={"blog_id": blog_id})
        assert rejected.status_code == 500
        assert rejected.json()["error"] == "you can not access draft blogs"
        allowed = client.post("/get-blog", json={"blog_id": blog_id, "draft": True, "mode": "edit"})
        assert allowed.status_code == 200

    def test_unknown_blog(self, client):
        response = client.post("/get-blog", json={"blog_id": "missing"})
        assert response.status_code == 404


class TestListings:

    def test_latest_puts_followed_authors_first(self, client, db, signup, publish, user_id):
        reader = signup(email="reader@example.com")
        alice = signup(email="alice@example.com")
        bob = signup(email="bob@example.com")
        alice_blog = publish(alice["headers"], title="Alice writes")
        bob_blog = publish(bob["headers"], title="Bob writes")

        now = datetime.now(timezone.utc)
        db.blogs.update_one({"blog_id": alice_blog}, {"$set": {"published_at": now - timedelta(hours=5)}})
        db.blogs.update_one({"blog_id": bob_blog}, {"$set": {"published_at": now}})

        anonymous = client.post("/latest-blogs", json={"page": 1}).json()["blogs"]
        assert [b["blog_id"] for b in anonymous] == [bob_blog, alice_blog]

        client.post("/handle-follow", json={"profile_id": user_id("alice")}, headers=reader["headers"])
        personal = client.post("/latest-blogs", json={"page": 1}, headers=reader["headers"]).json()["blogs"]
        assert [b["blog_id"] for b in personal] == [alice_blog, bob_blog]

    def test_latest_excludes_drafts_and_counts(self, client, signup, publish):
        account = signup()
        publish(account["headers"], title="Public")
        publish(account["headers"], title="Private", draft=True)
        blogs = client.post("/latest-blogs", json={"page": 1}).json()["blogs"]
        assert [b["title"] for b in blogs] == ["Public"]
        assert client.post("/all-latest-blogs-count").json()["totalDocs"] == 1

    def test_trending_order(self, client, db, signup, publish):
        account = signup()
        quiet = publish(account["headers"], title="Quiet")
        popular = publish(account["headers"], title="Popular")
        liked = publish(account["headers"], title="Liked")
        db.blogs.update_one({"blog_id": popular}, {"$set": {"activity.total_reads": 10}})
        db.blogs.update_one({"blog_id": liked}, {"$set": {"activity.total_reads": 3, "activity.total_likes": 2}})
        db.blogs.update_one({"blog_id": quiet}, {"$set": {"activity.total_reads": 3}})
        blogs = client.get("/tending-blogs").json()["blogs"]
        assert [b["blog_id"] for b in blogs] == [popular, liked, quiet]

    def test_search_by_tag_query_and_author(self, client, signup, publish, user_id):
        alice = signup(email="alice@example.com")
        bob = signup(email="bob@example.com")
        publish(alice["headers"], title="Cooking pasta", tags=["food"])
        eliminated = publish(alice["headers"], title="Cooking rice", tags=["food"])
        publish(bob["headers"], title="Running far", tags=["sport"])

        by_tag = client.post("/search-blogs", json={"tag": "food", "page": 1,
                                                    "eliminate_blog": eliminated}).json()["blogs"]
        assert [b["title"] for b in by_tag] == ["Cooking pasta"]

        by_query = client.post("/search-blogs", json={"query": "cOOKing", "page": 1}).json()["blogs"]
        assert {b["title"] for b in by_query} == {"Cooking pasta", "Cooking rice"}

        by_author = client.post("/search-blogs", json={"author": user_id("bob"), "page": 1}).json()["blogs"]
        assert [b["title"] for b in by_author] == ["Running far"]

        count = client.post("/search-blogs-count", json={"tag": "food"}).json()["totalDocs"]
        assert count == 2

    def test_user_written_blogs(self, client, signup, publish):
        account = signup()
        publish(account["headers"], title="Published one")
        publish(account["headers"], title="Draft one", draft=True)
        drafts = client.post("/user-written-blogs", json={"page": 1, "draft": True, "query": ""},
                             headers=account["headers"]).json()["blogs"]
        assert [b["title"] for b in drafts] == ["Draft one"]
        count = client.post("/user-written-blogs-count", json={"draft": False, "query": "published"},
                            headers=account["headers"]).json()["totalDocs"]
        assert count == 1


class TestDeleteBlog:

    def test_cascades(self, client, db, signup, publish):
        author = signup(email="author@example.com")
        reader = signup(email="reader@example.com")
        blog_id = publish(author["headers"])
        blog_oid = str(db.blogs.find_one({"blog_id": blog_id})["_id"])
        client.post("/add-comment", json={"_id": blog_oid, "comment": "Nice"}, headers=reader["headers"])
        client.post("/like-blog", json={"_id": blog_oid, "isLikedByUser": False}, headers=reader["headers"])

        response = client.post("/delete-blog", json={"blog_id": blog_id}, headers=author["headers"])
        assert response.status_code == 200
        assert db.blogs.count_documents({}) == 0
        assert db.comments.count_documents({}) == 0
        assert db.notifications.count_documents({}) == 0
        user = db.users.find_one({"personal_info.username": author["username"]})
        assert user["account_info"]["total_posts"] == 0
        assert user["blogs"] == []

    def test_only_author_can_delete(self, client, signup, publish):
        author = signup(email="author@example.com")
        other = signup(email="other@example.com")
        blog_id = publish(author["headers"])
        response = client.post("/delete-blog", json={"blog_id": blog_id}, headers=other["headers"])
        assert response.status_code == 403
