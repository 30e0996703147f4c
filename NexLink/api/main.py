"""
REST surface over the NexLink store.

Every route except `/health` requires the `X-API-Key` header. Tool calls
from the AI collaborator go through `POST /tools/{name}`; chat messages
sent to AI members schedule a reply as a background task. A successful
signup or login starts the session heartbeat and logout stops it; the
assistant auto-post loop runs between startup and shutdown.

Run with: `python -m NexLink.api`
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, FastAPI, Header, HTTPException, status

from NexLink.core.commands import execute_tool
from NexLink.core.config import get_settings
from NexLink.core.models import Message, StoryText
from NexLink.core.presence import HeartbeatTimer
from NexLink.core.responder import AssistantPostLoop, ChatResponder, LLMAdapter, ScriptedLLMSimulator
from NexLink.core.storage import PersistentStore
from NexLink.core.store import DuplicateEmailError, SocialStore

from .schemas import (
    ActorRequest,
    ChatCreate,
    ChatResponse,
    CommentCreate,
    CommentResponse,
    GroupInfoUpdate,
    LoginRequest,
    MessageCreate,
    MessageResponse,
    NotificationResponse,
    PostCreate,
    PostResponse,
    ProfileUpdate,
    SignupRequest,
    StoryCreate,
    StoryResponse,
    UserResponse,
)

settings = get_settings()
logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger("nexlink")

store = SocialStore(storage=PersistentStore(settings.STATE_PATH) if settings.AUTOSAVE else None)
store.initialize()
llm_adapter: LLMAdapter = ScriptedLLMSimulator()
heartbeat_timer: Optional[HeartbeatTimer] = None
assistant_poster: Optional[AssistantPostLoop] = None

app = FastAPI(title=settings.APP_NAME, version=settings.VERSION)


def verify_api_key(x_api_key: Optional[str] = Header(None, alias="X-API-Key")) -> str:
    if x_api_key != settings.NEXLINK_API_KEY:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
    return x_api_key


router = APIRouter(dependencies=[Depends(verify_api_key)])


def _not_found(kind: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{kind} not found")


def _user_response(user) -> UserResponse:
    return UserResponse.from_model(user, online=store.is_online(user.id))


def _post_response(post) -> PostResponse:
    return PostResponse.from_model(post, store.get_shared_original(post))


def _run_responder(message: Message) -> None:
    ChatResponder(store, llm_adapter).handle_message(message)


def _start_heartbeat() -> None:
    global heartbeat_timer
    _stop_heartbeat()
    heartbeat_timer = HeartbeatTimer(store)
    heartbeat_timer.start()


def _stop_heartbeat() -> None:
    global heartbeat_timer
    if heartbeat_timer is not None:
        heartbeat_timer.stop(timeout=1)
        heartbeat_timer = None


@app.on_event("startup")
def startup() -> None:
    global assistant_poster
    if settings.ASSISTANT_AUTOPOST:
        assistant_poster = AssistantPostLoop(ChatResponder(store, llm_adapter))
        assistant_poster.start()


@app.on_event("shutdown")
def shutdown() -> None:
    global assistant_poster
    _stop_heartbeat()
    if assistant_poster is not None:
        assistant_poster.stop(timeout=1)
        assistant_poster = None


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "service": settings.APP_NAME, "version": settings.VERSION}


# ---- Session ----


@router.post("/auth/signup", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def signup(payload: SignupRequest) -> UserResponse:
    try:
        user = store.signup(payload.name, payload.email, payload.password, payload.avatar)
    except DuplicateEmailError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if store.current_user_id == user.id:
        _start_heartbeat()
    return _user_response(user)


@router.post("/auth/login", response_model=UserResponse)
def login(payload: LoginRequest) -> UserResponse:
    user = store.login(payload.email, payload.password)
    if user is None:
        # Wrong credentials and suspended accounts share one answer.
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    _start_heartbeat()
    return _user_response(user)


@router.post("/auth/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout() -> None:
    _stop_heartbeat()
    store.logout()


@router.get("/session", response_model=Optional[UserResponse])
def current_session() -> Optional[UserResponse]:
    user = store.current_user
    return _user_response(user) if user else None


# ---- Users & graph ----


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(user_id: str) -> UserResponse:
    user = store.get_user_by_id(user_id)
    if user is None:
        raise _not_found("User")
    return _user_response(user)


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_profile(user_id: str, payload: ProfileUpdate) -> UserResponse:
    user = store.update_profile(user_id, name=payload.name, avatar=payload.avatar, bio=payload.bio)
    if user is None:
        raise _not_found("User")
    return _user_response(user)


@router.post("/users/{user_id}/heartbeat", status_code=status.HTTP_204_NO_CONTENT)
def heartbeat(user_id: str) -> None:
    if not store.heartbeat(user_id):
        raise _not_found("User")


@router.post("/users/{user_id}/following/{target_id}", status_code=status.HTTP_204_NO_CONTENT)
def follow(user_id: str, target_id: str) -> None:
    if not store.follow(user_id, target_id):
        raise _not_found("User")


@router.delete("/users/{user_id}/following/{target_id}", status_code=status.HTTP_204_NO_CONTENT)
def unfollow(user_id: str, target_id: str) -> None:
    if not store.unfollow(user_id, target_id):
        raise _not_found("User")


@router.post("/users/{user_id}/blocked/{target_id}", status_code=status.HTTP_204_NO_CONTENT)
def block(user_id: str, target_id: str) -> None:
    if not store.block(user_id, target_id):
        raise _not_found("User")


@router.delete("/users/{user_id}/blocked/{target_id}", status_code=status.HTTP_204_NO_CONTENT)
def unblock(user_id: str, target_id: str) -> None:
    if not store.unblock(user_id, target_id):
        raise _not_found("User")


@router.post("/users/{user_id}/friend-requests/{target_id}")
def send_friend_request(user_id: str, target_id: str) -> dict:
    return {"sent": store.send_friend_request(user_id, target_id)}


@router.post("/users/{user_id}/friend-requests/{requester_id}/accept", status_code=status.HTTP_204_NO_CONTENT)
def accept_friend_request(user_id: str, requester_id: str) -> None:
    if not store.accept_friend_request(user_id, requester_id):
        raise _not_found("User")


@router.post("/users/{user_id}/friend-requests/{requester_id}/reject", status_code=status.HTTP_204_NO_CONTENT)
def reject_friend_request(user_id: str, requester_id: str) -> None:
    if not store.reject_friend_request(user_id, requester_id):
        raise _not_found("User")


# ---- Content ----


@router.get("/posts", response_model=List[PostResponse])
def feed(user_id: Optional[str] = None) -> List[PostResponse]:
    posts = store.posts_by(user_id) if user_id else store.feed()
    return [_post_response(post) for post in posts]


@router.post("/posts", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
def create_post(payload: PostCreate) -> PostResponse:
    post = store.add_post(payload.user_id, payload.content, payload.image, payload.video, payload.shared_from_id)
    if post is None:
        raise _not_found("User")
    return _post_response(post)


@router.post("/posts/{post_id}/like", response_model=PostResponse)
def toggle_like(post_id: str, payload: ActorRequest) -> PostResponse:
    post = store.toggle_like(post_id, payload.user_id)
    if post is None:
        raise _not_found("Post")
    return _post_response(post)


@router.get("/posts/{post_id}/comments", response_model=List[CommentResponse])
def list_comments(post_id: str) -> List[CommentResponse]:
    return [CommentResponse.from_model(c) for c in store.comments_for(post_id)]


@router.post("/posts/{post_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
def add_comment(post_id: str, payload: CommentCreate) -> CommentResponse:
    comment = store.add_comment(post_id, payload.user_id, payload.content)
    if comment is None:
        raise _not_found("Post")
    return CommentResponse.from_model(comment)


@router.get("/stories", response_model=List[StoryResponse])
def list_stories() -> List[StoryResponse]:
    return [StoryResponse.from_model(story) for story in store.list_stories()]


@router.post("/stories", response_model=StoryResponse, status_code=status.HTTP_201_CREATED)
def add_story(payload: StoryCreate) -> StoryResponse:
    texts = [StoryText(**text.model_dump()) for text in payload.texts]
    story = store.add_story(payload.user_id, payload.image, texts)
    if story is None:
        raise _not_found("User")
    return StoryResponse.from_model(story)


# ---- Notifications ----


@router.get("/users/{user_id}/notifications", response_model=List[NotificationResponse])
def list_notifications(user_id: str) -> List[NotificationResponse]:
    return [NotificationResponse.from_model(n) for n in store.notifications_for(user_id)]


@router.post("/users/{user_id}/notifications/read")
def mark_notifications_read(user_id: str) -> dict:
    return {"marked": store.mark_notifications_read(user_id)}


# ---- Messaging ----


@router.post("/chats", response_model=ChatResponse, status_code=status.HTTP_201_CREATED)
def create_chat(payload: ChatCreate) -> ChatResponse:
    chat = store.create_chat(payload.members, payload.type, payload.name)
    if chat is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="A private chat needs exactly two distinct members",
        )
    return ChatResponse.from_model(chat)


@router.get("/users/{user_id}/chats", response_model=List[ChatResponse])
def list_chats(user_id: str, include_archived: bool = False) -> List[ChatResponse]:
    return [ChatResponse.from_model(c) for c in store.chats_for(user_id, include_archived)]


@router.get("/chats/{chat_id}/messages", response_model=List[MessageResponse])
def list_messages(chat_id: str) -> List[MessageResponse]:
    if chat_id not in store.chats:
        raise _not_found("Chat")
    return [MessageResponse.from_model(m) for m in store.messages_for(chat_id)]


@router.post("/chats/{chat_id}/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def send_message(chat_id: str, payload: MessageCreate, background_tasks: BackgroundTasks) -> MessageResponse:
    message = store.send_message(chat_id, payload.sender_id, payload.content, payload.image, payload.story_snapshot)
    if message is None:
        raise _not_found("Chat")
    background_tasks.add_task(_run_responder, message)
    return MessageResponse.from_model(message)


def _chat_or_404(chat) -> ChatResponse:
    if chat is None:
        raise _not_found("Chat")
    return ChatResponse.from_model(chat)


@router.post("/chats/{chat_id}/read", response_model=ChatResponse)
def mark_chat_read(chat_id: str, payload: ActorRequest) -> ChatResponse:
    return _chat_or_404(store.mark_chat_read(chat_id, payload.user_id))


@router.post("/chats/{chat_id}/archive", response_model=ChatResponse)
def archive_chat(chat_id: str, payload: ActorRequest) -> ChatResponse:
    return _chat_or_404(store.archive_chat(chat_id, payload.user_id))


@router.delete("/chats/{chat_id}/archive/{user_id}", response_model=ChatResponse)
def unarchive_chat(chat_id: str, user_id: str) -> ChatResponse:
    return _chat_or_404(store.unarchive_chat(chat_id, user_id))


@router.patch("/chats/{chat_id}", response_model=ChatResponse)
def update_group_info(chat_id: str, payload: GroupInfoUpdate) -> ChatResponse:
    return _chat_or_404(store.update_group_info(chat_id, payload.name, payload.image))


@router.post("/chats/{chat_id}/members", response_model=ChatResponse)
def add_group_member(chat_id: str, payload: ActorRequest) -> ChatResponse:
    return _chat_or_404(store.add_group_member(chat_id, payload.user_id))


@router.delete("/chats/{chat_id}/members/{user_id}", response_model=ChatResponse)
def remove_group_member(chat_id: str, user_id: str) -> ChatResponse:
    return _chat_or_404(store.remove_group_member(chat_id, user_id))


@router.post("/chats/{chat_id}/admins", response_model=ChatResponse)
def make_group_admin(chat_id: str, payload: ActorRequest) -> ChatResponse:
    return _chat_or_404(store.make_group_admin(chat_id, payload.user_id))


@router.post("/chats/{chat_id}/leave", response_model=ChatResponse)
def leave_group(chat_id: str, payload: ActorRequest) -> ChatResponse:
    return _chat_or_404(store.leave_group(chat_id, payload.user_id))


# ---- AI collaborator ----


@router.post("/tools/{name}")
def invoke_tool(name: str, args: Dict[str, Any] = Body(default={})) -> Dict[str, Any]:
    result = execute_tool(store, name, args)
    return result.model_dump(exclude_none=True)


app.include_router(router)
