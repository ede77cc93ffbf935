from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
import uuid

DEFAULT_TITLE = "New Chat"


class ChatSession(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    # Supabase auth user id; the identity lives outside this database
    user_id = models.CharField(max_length=64, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "chats"
        indexes = [models.Index(fields=["user_id", "-created_at"], name="chats_user_recent_idx")]

    def __str__(self):
        return f"{self.id} ({self.user_id})"


class ChatTurn(models.Model):
    session = models.ForeignKey(ChatSession, on_delete=models.CASCADE, related_name="turns")
    position = models.PositiveIntegerField()
    user_message = models.TextField()
    ai_response = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "chat_turns"
        ordering = ["position"]
        constraints = [
            models.UniqueConstraint(fields=["session", "position"], name="chat_turn_position_unique"),
        ]


class Rating(models.Model):
    turn = models.ForeignKey(ChatTurn, on_delete=models.CASCADE, related_name="ratings")
    rater_user_id = models.CharField(max_length=64)
    rating = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(5)])
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "chat_ratings"
        constraints = [
            models.UniqueConstraint(fields=["turn", "rater_user_id"], name="chat_rating_once_per_user"),
        ]
