import json

import pytest

from inedit.errors import UpstreamFailureError
from inedit.models import Role
from inedit.settings import settings


def _generate(client, headers, source_ids, **extra):
	return client.post("/banca/cebraspe/questions", json={"source_ids": source_ids, **extra}, headers=headers)


def _drafts_request(client, method, headers, ids, banca_id="cebraspe"):
	return client.request(method, f"/banca/{banca_id}/questions/drafts", json={"question_ids": ids}, headers=headers)


def test_health(client):
	res = client.get("/health")
	assert res.status_code == 200
	assert res.json()["status"] == "ok"


def test_register_login_and_me(client):
	res = client.post("/auth/register", json={"username": "carla", "password": "pw", "email": "c@x.io"})
	assert res.status_code == 201
	assert res.json()["role"] == "free"

	dup = client.post("/auth/register", json={"username": "carla", "password": "pw"})
	assert dup.status_code == 409
	assert dup.json()["error"]["code"] == "conflict"

	bad = client.post("/auth/token", data={"username": "carla", "password": "nope"})
	assert bad.status_code == 401

	token = client.post("/auth/token", data={"username": "carla", "password": "pw"}).json()["access_token"]
	me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
	assert me.status_code == 200
	assert me.json()["username"] == "carla"


def test_requests_without_token_are_unauthenticated(client):
	res = client.get("/banca/cebraspe/questions")
	assert res.status_code == 401
	assert res.json()["error"]["code"] == "unauthenticated"


def test_only_active_bancas_are_listed(client):
	res = client.get("/bancas")
	assert res.status_code == 200
	assert [b["id"] for b in res.json()] == ["cebraspe", "outra"]


def test_sources(client, make_user, auth_headers):
	headers = auth_headers(make_user("ana"))
	created = client.post("/banca/cebraspe/sources", json={"type": "text", "title": "Lei", "content": "texto"}, headers=headers)
	assert created.status_code == 201
	assert created.json()["processing_status"] == "completed"

	listed = client.get("/banca/cebraspe/sources", headers=headers)
	assert [s["title"] for s in listed.json()] == ["Lei"]

	empty = client.post("/banca/cebraspe/sources", json={"type": "text", "title": "Lei"}, headers=headers)
	assert empty.status_code == 400
	assert empty.json()["error"]["details"][0]["field"] == "content"

	inactive = client.post("/banca/fgv/sources", json={"type": "url", "title": "x", "url": "https://x"}, headers=headers)
	assert inactive.status_code == 404


def test_free_user_generate_publish_answer_flow(client, db, make_user, make_source, auth_headers, fake_generator):
	ana = make_user("ana")
	headers = auth_headers(ana)
	source = make_source(ana)

	res = _generate(client, headers, [source.id])
	assert res.status_code == 201
	body = res.json()
	assert body["tokens_used"] == 321
	drafts = body["questions"]
	assert len(drafts) == 5
	assert all(q["status"] == "draft" for q in drafts)
	assert all(q["generated_from_source_ids"] == [source.id] for q in drafts)
	assert "Lei 8.112" in fake_generator.prompts[0]

	status = client.get("/user/generation-status", headers=headers).json()
	assert status["used"] == 1
	assert status["remaining"] == 1

	assert client.get("/banca/cebraspe/questions", headers=headers).json() == []
	listed_drafts = client.get("/banca/cebraspe/questions", params={"status": "draft"}, headers=headers).json()
	assert len(listed_drafts) == 5

	published = _drafts_request(client, "POST", headers, [q["id"] for q in drafts])
	assert published.status_code == 200
	assert published.json()["count"] == 5

	listed = client.get("/banca/cebraspe/questions", headers=headers).json()
	assert len(listed) == 5
	question = listed[0]
	assert question["user_answer"] is None
	assert question["answer_stats"] == {"total_attempts": 0, "correct_attempts": 0, "incorrect_attempts": 0}

	correct = next(o for o in question["options"] if o["is_correct"])
	answer = client.post(
		f"/banca/cebraspe/questions/{question['id']}/answer",
		json={"selected_option_id": correct["id"], "time_spent_seconds": 20},
		headers=headers,
	)
	assert answer.status_code == 200
	assert answer.json()["is_correct"] is True
	assert answer.json()["question_stats"] == {"times_answered": 1, "correct_answer_rate": 100}

	history = client.get(f"/banca/cebraspe/questions/{question['id']}/answer", headers=headers).json()
	assert history["total_attempts"] == 1
	assert history["latest_answer"]["selected_option_id"] == correct["id"]

	stats = client.get("/banca/cebraspe/stats", headers=headers).json()
	assert stats["total_answered"] == 1
	assert stats["accuracy_percentage"] == 100
	assert stats["average_time_seconds"] == 20
	assert stats["performance_by_difficulty"] == [{"difficulty": "medium", "total": 1, "correct": 1, "percentage": 100}]

	tags = client.get("/banca/cebraspe/questions/tags", headers=headers).json()
	assert tags[0] == "direito"
	assert len(tags) == 6

	mine = client.get("/user/questions", headers=headers).json()
	assert [(g["banca_id"], g["question_count"]) for g in mine] == [("cebraspe", 5)]


def test_exhausted_credits_block_generation(client, make_user, make_source, auth_headers, fake_generator):
	ana = make_user("ana", credits_used=2)
	res = _generate(client, auth_headers(ana), [make_source(ana).id])
	assert res.status_code == 429
	assert res.json()["error"]["code"] == "credits_exhausted"
	assert fake_generator.prompts == []


def test_free_user_cannot_choose_difficulty(client, make_user, make_source, auth_headers):
	ana = make_user("ana")
	res = _generate(client, auth_headers(ana), [make_source(ana).id], difficulty="hard")
	assert res.status_code == 403


def test_pro_user_can_choose_difficulty(client, make_user, make_source, auth_headers, fake_generator):
	pro = make_user("pro", role=Role.PRO)
	res = _generate(client, auth_headers(pro), [make_source(pro).id], difficulty="hard", count=5)
	assert res.status_code == 201
	assert "Difficulty level: hard" in fake_generator.prompts[0]


def test_foreign_sources_are_not_found_and_cost_nothing(client, db, make_user, make_source, auth_headers):
	ana = make_user("ana")
	bia = make_user("bia")
	res = _generate(client, auth_headers(ana), [make_source(bia).id])
	assert res.status_code == 404
	assert res.json()["error"]["message"] == "No valid sources found"
	db.refresh(ana)
	assert ana.credits_used == 0


def test_upstream_failure_does_not_consume_credit(client, db, make_user, make_source, auth_headers, fake_generator):
	ana = make_user("ana")
	fake_generator.error = UpstreamFailureError("Failed to generate questions, try again")
	res = _generate(client, auth_headers(ana), [make_source(ana).id])
	assert res.status_code == 502
	assert res.json()["error"]["code"] == "upstream_failure"
	db.refresh(ana)
	assert ana.credits_used == 0


def test_unparseable_output_does_not_consume_credit(client, db, make_user, make_source, auth_headers, fake_generator):
	ana = make_user("ana")
	fake_generator.text = "I could not do it"
	res = _generate(client, auth_headers(ana), [make_source(ana).id])
	assert res.status_code == 502
	db.refresh(ana)
	assert ana.credits_used == 0


def test_daily_policy_status(client, make_user, make_source, auth_headers, monkeypatch):
	monkeypatch.setattr(settings, "credit_policy", "daily")
	ana = make_user("ana")
	headers = auth_headers(ana)
	assert _generate(client, headers, [make_source(ana).id]).status_code == 201

	status = client.get("/user/generation-status", headers=headers).json()
	assert status["policy"] == "daily"
	assert status["used"] == 1
	assert status["resets_at"] is not None


@pytest.mark.parametrize("payload", [
	{"source_ids": []},
	{"source_ids": [1], "count": 0},
	{"source_ids": [1], "count": 21},
	{"source_ids": [1], "difficulty": "impossible"},
])
def test_generation_request_validation(client, make_user, auth_headers, payload):
	res = client.post("/banca/cebraspe/questions", json=payload, headers=auth_headers(make_user("ana")))
	assert res.status_code == 400
	assert res.json()["error"]["code"] == "validation_failed"


def test_list_rejects_bad_query(client, make_user, auth_headers):
	headers = auth_headers(make_user("ana"))
	assert client.get("/banca/cebraspe/questions", params={"status": "gone"}, headers=headers).status_code == 400
	assert client.get("/banca/cebraspe/questions", params={"limit": 101}, headers=headers).status_code == 400


def test_other_users_questions_are_invisible(client, make_user, make_drafts, auth_headers):
	ana = make_user("ana")
	bia = make_user("bia")
	question = make_drafts(ana)[0]
	headers = auth_headers(bia)

	assert client.get(f"/banca/cebraspe/questions/{question.id}", headers=headers).status_code == 404
	assert _drafts_request(client, "POST", headers, [question.id]).status_code == 404
	assert _drafts_request(client, "DELETE", headers, [question.id]).status_code == 404
	assert client.delete(f"/banca/cebraspe/questions/{question.id}", headers=headers).status_code == 404
	answer = client.post(
		f"/banca/cebraspe/questions/{question.id}/answer",
		json={"selected_option_id": question.options[0].id},
		headers=headers,
	)
	assert answer.status_code == 404


def test_discard_and_delete(client, make_user, make_drafts, auth_headers):
	ana = make_user("ana")
	headers = auth_headers(ana)
	drafts = make_drafts(ana, count=2)
	published = make_drafts(ana, publish=True)[0]

	res = _drafts_request(client, "DELETE", headers, [q.id for q in drafts])
	assert res.status_code == 200
	assert res.json()["deleted"] == 2
	assert _drafts_request(client, "DELETE", headers, [q.id for q in drafts]).status_code == 404

	assert client.delete(f"/banca/cebraspe/questions/{published.id}", headers=headers).status_code == 200
	assert client.delete(f"/banca/cebraspe/questions/{published.id}", headers=headers).status_code == 404


def test_draft_actions_need_ids(client, make_user, auth_headers):
	res = _drafts_request(client, "POST", auth_headers(make_user("ana")), [])
	assert res.status_code == 400


def test_answer_validation(client, make_user, make_drafts, auth_headers):
	ana = make_user("ana")
	headers = auth_headers(ana)
	first, second = make_drafts(ana, count=2, publish=True)
	url = f"/banca/cebraspe/questions/{first.id}/answer"

	foreign = client.post(url, json={"selected_option_id": second.options[0].id}, headers=headers)
	assert foreign.status_code == 400
	assert foreign.json()["error"]["message"] == "Invalid option"

	zero = client.post(url, json={"selected_option_id": first.options[0].id, "time_spent_seconds": 0}, headers=headers)
	assert zero.status_code == 400


def test_stats_for_new_user_are_zero(client, make_user, auth_headers):
	stats = client.get("/banca/cebraspe/stats", headers=auth_headers(make_user("ana"))).json()
	assert stats["total_answered"] == 0
	assert stats["accuracy_percentage"] == 0
	assert stats["performance_by_difficulty"] == []


def test_admin_manages_users(client, db, make_user, auth_headers):
	admin = make_user("root", role=Role.ADMIN)
	ana = make_user("ana")
	headers = auth_headers(admin)

	users = client.get("/admin/users", headers=headers)
	assert users.status_code == 200
	assert {u["username"] for u in users.json()} == {"root", "ana"}

	res = client.patch(f"/admin/users/{ana.id}", json={"role": "pro", "credits_granted": 30}, headers=headers)
	assert res.status_code == 200
	assert res.json()["role"] == "pro"
	assert res.json()["credits_granted"] == 30

	status = client.get("/user/generation-status", headers=auth_headers(ana)).json()
	assert status["limit"] == 30

	assert client.patch(f"/admin/users/{admin.id}", json={"role": "free"}, headers=headers).status_code == 403
	assert client.patch("/admin/users/missing", json={"role": "pro"}, headers=headers).status_code == 404
	assert client.get("/admin/users", headers=auth_headers(ana)).status_code == 403


def test_admin_generates_without_limit(client, make_user, make_source, auth_headers):
	admin = make_user("root", role=Role.ADMIN, credits_used=500)
	headers = auth_headers(admin)
	assert _generate(client, headers, [make_source(admin).id]).status_code == 201
	status = client.get("/user/generation-status", headers=headers).json()
	assert status["unlimited"] is True
	assert status["remaining"] is None


def test_malformed_generator_fields_are_upstream_failure(client, db, make_user, make_source, auth_headers, fake_generator):
	ana = make_user("ana")
	fake_generator.text = json.dumps([{"title": "T", "correctAnswer": "Certo", "description": {"ctx": 1}}])
	res = _generate(client, auth_headers(ana), [make_source(ana).id])
	assert res.status_code == 502
	assert res.json()["error"]["code"] == "upstream_failure"
	db.refresh(ana)
	assert ana.credits_used == 0


def test_extra_generated_questions_are_dropped(client, make_user, make_source, auth_headers):
	ana = make_user("ana")
	res = _generate(client, auth_headers(ana), [make_source(ana).id], count=2)
	assert res.status_code == 201
	assert [q["title"] for q in res.json()["questions"]] == ["Statement number 1", "Statement number 2"]


@pytest.mark.parametrize("option_id", ["5", 5.0, True])
def test_option_id_must_be_an_integer(client, make_user, make_drafts, auth_headers, option_id):
	ana = make_user("ana")
	headers = auth_headers(ana)
	question = make_drafts(ana, publish=True)[0]
	res = client.post(
		f"/banca/cebraspe/questions/{question.id}/answer",
		json={"selected_option_id": option_id},
		headers=headers,
	)
	assert res.status_code == 400
	assert res.json()["error"]["details"][0]["field"] == "selected_option_id"


def test_my_tags_cover_every_banca_and_status(client, make_user, make_drafts, auth_headers):
	ana = make_user("ana")
	headers = auth_headers(ana)
	make_drafts(ana, tags=["penal"], publish=True)
	make_drafts(ana, banca_id="outra", tags=["civil"])

	assert client.get("/user/questions/tags", headers=headers).json() == ["civil", "penal"]
	assert client.get("/banca/cebraspe/questions/tags", headers=headers).json() == ["penal"]
