import pytest
from starlette.websockets import WebSocketDisconnect


def _connect(client, token):
    return client.websocket_connect(f"/ws?token={token}")


def _join(websocket, project_ids=None):
    data = {} if project_ids is None else {"projectIds": project_ids}
    websocket.send_json({"event": "join-projects", "data": data})
    reply = websocket.receive_json()
    assert reply["event"] == "joined-projects"
    return reply["data"]["projectIds"]


@pytest.fixture
def team(register, create_project, invite, create_task):
    alice, alice_headers, alice_token = register("Alice", "alice@example.com")
    bob, bob_headers, bob_token = register("Bob", "bob@example.com")
    carol, carol_headers, carol_token = register("Carol", "carol@example.com")
    project = create_project(alice_headers)
    invite(alice_headers, project["id"], "bob@example.com")
    task = create_task(alice_headers, project["id"], "Live task")
    return {
        "alice": (alice, alice_headers, alice_token),
        "bob": (bob, bob_headers, bob_token),
        "carol": (carol, carol_headers, carol_token),
        "project": project,
        "task": task,
    }


def test_connection_without_token_is_closed(client):
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect("/ws"):
            pass
    assert excinfo.value.code == 4401


def test_connection_with_bad_token_is_closed(client):
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect("/ws?token=not-a-jwt"):
            pass
    assert excinfo.value.code == 4403


def test_bearer_header_is_accepted(client, team):
    bob, _headers, token = team["bob"]
    with client.websocket_connect("/ws", headers={"Authorization": f"Bearer {token}"}) as websocket:
        hello = websocket.receive_json()
    assert hello == {"event": "connected", "data": {"userId": bob["id"]}}


def test_join_projects_only_joins_visible_rooms(client, team, create_project):
    _carol, carol_headers, carol_token = team["carol"]
    carol_project = create_project(carol_headers, "Carol's")
    project_id = team["project"]["id"]

    with _connect(client, team["bob"][2]) as websocket:
        websocket.receive_json()
        assert _join(websocket) == [project_id]

    with _connect(client, carol_token) as websocket:
        websocket.receive_json()
        assert _join(websocket, [project_id, carol_project["id"]]) == [carol_project["id"]]


def test_rest_comment_reaches_member_socket(client, team):
    _alice, alice_headers, _ = team["alice"]
    bob, _bob_headers, bob_token = team["bob"]
    task = team["task"]

    with _connect(client, bob_token) as websocket:
        websocket.receive_json()
        _join(websocket)

        response = client.post(
            "/api/comments",
            json={"content": "Ready for review", "task_id": task["id"]},
            headers=alice_headers,
        )
        assert response.status_code == 201

        notification = websocket.receive_json()
        assert notification["event"] == "new-notification"
        assert notification["data"]["type"] == "comment_added"
        assert notification["data"]["user_id"] == bob["id"]
        assert notification["data"]["related_id"] == task["id"]

        comment = websocket.receive_json()
        assert comment["event"] == "comment-added"
        assert comment["data"]["taskId"] == task["id"]
        assert comment["data"]["comment"]["content"] == "Ready for review"


def test_task_update_is_rebroadcast_to_the_stored_project(client, team):
    alice, _alice_headers, alice_token = team["alice"]
    task = team["task"]
    project_id = team["project"]["id"]

    with _connect(client, alice_token) as alice_ws, _connect(client, team["bob"][2]) as bob_ws:
        alice_ws.receive_json()
        bob_ws.receive_json()
        _join(alice_ws)
        _join(bob_ws)

        alice_ws.send_json(
            {"event": "task-updated", "data": {"taskId": task["id"], "projectId": 999, "updates": {"status": "done"}}}
        )
        message = bob_ws.receive_json()

    assert message["event"] == "task-updated"
    assert message["data"]["projectId"] == project_id
    assert message["data"]["updates"] == {"status": "done"}
    assert message["data"]["updatedBy"]["id"] == alice["id"]


def test_forged_task_event_is_refused(client, team):
    task = team["task"]

    with (
        _connect(client, team["alice"][2]) as alice_ws,
        _connect(client, team["bob"][2]) as bob_ws,
        _connect(client, team["carol"][2]) as carol_ws,
    ):
        for websocket in (alice_ws, bob_ws, carol_ws):
            websocket.receive_json()
        _join(alice_ws)
        _join(bob_ws)

        carol_ws.send_json({"event": "task-updated", "data": {"taskId": task["id"], "updates": {"title": "pwned"}}})
        error = carol_ws.receive_json()
        assert error == {"event": "error", "data": {"message": "Task not found or insufficient permissions"}}

        # bob's next frame is the typing event, not carol's update
        alice_ws.send_json({"event": "typing-start", "data": {"taskId": task["id"], "projectId": task["project_id"]}})
        assert bob_ws.receive_json()["event"] == "user-typing"


def test_typing_relay(client, team):
    alice, _alice_headers, alice_token = team["alice"]
    task = team["task"]
    typing = {"taskId": task["id"], "projectId": task["project_id"]}

    with _connect(client, alice_token) as alice_ws, _connect(client, team["bob"][2]) as bob_ws:
        alice_ws.receive_json()
        bob_ws.receive_json()
        _join(alice_ws)
        _join(bob_ws)

        alice_ws.send_json({"event": "typing-start", "data": typing})
        started = bob_ws.receive_json()
        alice_ws.send_json({"event": "typing-stop", "data": typing})
        stopped = bob_ws.receive_json()

    assert started == {
        "event": "user-typing",
        "data": {"taskId": task["id"], "userId": alice["id"], "userName": "Alice", "isTyping": True},
    }
    assert stopped["data"]["isTyping"] is False


def test_typing_requires_joined_room(client, team):
    task = team["task"]
    with _connect(client, team["carol"][2]) as websocket:
        websocket.receive_json()
        websocket.send_json({"event": "typing-start", "data": {"taskId": task["id"], "projectId": task["project_id"]}})
        reply = websocket.receive_json()
    assert reply["event"] == "error"


def test_malformed_and_unknown_frames(client, team):
    with _connect(client, team["bob"][2]) as websocket:
        websocket.receive_json()

        websocket.send_text("{not json")
        assert websocket.receive_json() == {"event": "error", "data": {"message": "Malformed message"}}

        websocket.send_json({"event": "self-destruct", "data": {}})
        assert websocket.receive_json()["data"]["message"] == "Unknown event 'self-destruct'"

        websocket.send_json({"event": "task-updated", "data": {"updates": {}}})
        assert websocket.receive_json()["data"]["message"] == "Invalid payload for 'task-updated'"

        # the connection is still usable
        assert _join(websocket) == [team["project"]["id"]]


def test_rest_project_update_reaches_project_room(client, team):
    alice, alice_headers, _ = team["alice"]
    project_id = team["project"]["id"]

    with _connect(client, team["bob"][2]) as websocket:
        websocket.receive_json()
        _join(websocket)

        response = client.put(f"/api/projects/{project_id}", json={"title": "Relaunch"}, headers=alice_headers)
        assert response.status_code == 200

        message = websocket.receive_json()

    assert message["event"] == "project-updated"
    assert message["data"]["projectId"] == project_id
    assert message["data"]["updates"] == {"title": "Relaunch"}
    assert message["data"]["updatedBy"]["id"] == alice["id"]


def test_binary_frames_are_refused_without_dropping_the_connection(client, team):
    with _connect(client, team["bob"][2]) as websocket:
        websocket.receive_json()

        websocket.send_bytes(b"\x00\x01")
        assert websocket.receive_json() == {"event": "error", "data": {"message": "Binary frames are not supported"}}

        assert _join(websocket) == [team["project"]["id"]]
