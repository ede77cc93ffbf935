from fanout.sse import sse_send

NEW_MESSAGE = "new_message"


def notify(user_id, event, *, data=None, chat_id=None):
    return sse_send(str(user_id), event, data=data or {}, chat_id=chat_id)


def notify_new_message(user_id, *, chat_id, message, ai_response):
    data = {"chat_id": str(chat_id), "message": message, "ai_response": ai_response}
    return notify(user_id, NEW_MESSAGE, data=data, chat_id=str(chat_id))
