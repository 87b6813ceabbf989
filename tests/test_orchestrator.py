"""Tests for submitting generations and running them to a terminal state."""
from unittest.mock import patch

import pytest

from app.core.errors import InsufficientCreditsError, NotFoundError, UpstreamError, ValidationError
from app.models.chat import Chat, ChatMessage
from app.models.generation import Generation
from app.services.chat import create_chat
from app.services.credits import get_credits, reset_credits
from app.services.orchestrator import run_generation, submit_generation
from app.services.style_references import create_style_reference, get_style_reference

from conftest import STYLE_URL, make_png


RESULT_URL = "https://bucket.s3.us-east-1.amazonaws.com/generated/1/result.png"


class TestSubmitGeneration:

    def test_submit_charges_and_enqueues(self, db, user, enqueued):
        submission = submit_generation(db, user, prompt="a cat", style_image_url=STYLE_URL)

        assert submission.status == "processing"
        assert submission.credits_remaining == 3
        assert submission.model.id == "gemini-2.5-flash-image"
        enqueued["generations"].assert_called_once_with(submission.generation_id)

        generation = db.get(Generation, submission.generation_id)
        assert generation.status == "processing"
        assert generation.credits_used == 1
        assert generation.user_id == user.id
        assert get_credits(db, user.id).credits == 3

    def test_unknown_model_falls_back_to_default(self, db, user):
        submission = submit_generation(db, user, prompt="a cat", style_image_url=STYLE_URL, model_id="gpt-image-99")

        assert submission.model.id == "gemini-2.5-flash-image"
        assert db.get(Generation, submission.generation_id).model == "gemini-2.5-flash-image"

    def test_insufficient_credits_creates_nothing(self, db, user, enqueued):
        reset_credits(db, user.id, 0)

        with pytest.raises(InsufficientCreditsError) as exc_info:
            submit_generation(db, user, prompt="a cat", style_image_url=STYLE_URL)

        assert exc_info.value.balance == 0
        assert db.query(Generation).count() == 0
        enqueued["generations"].assert_not_called()

    def test_failed_charge_rolls_back_record(self, db, user):
        from app.services.credits import CreditResult

        with patch("app.services.orchestrator.deduct_credits", return_value=CreditResult(False, 0)):
            with pytest.raises(InsufficientCreditsError):
                submit_generation(db, user, prompt="a cat", style_image_url=STYLE_URL)

        assert db.query(Generation).count() == 0
        assert get_credits(db, user.id).credits == 4

    @pytest.mark.parametrize("prompt", ["", "   ", "x" * 1001])
    def test_invalid_prompt_is_rejected_without_charge(self, db, user, prompt):
        with pytest.raises(ValidationError):
            submit_generation(db, user, prompt=prompt, style_image_url=STYLE_URL)

        assert get_credits(db, user.id).credits == 4

    def test_style_image_is_required(self, db, user):
        with pytest.raises(ValidationError):
            submit_generation(db, user, prompt="a cat")

    def test_queue_failure_marks_generation_failed(self, db, user, enqueued):
        enqueued["generations"].side_effect = RuntimeError("broker down")

        submission = submit_generation(db, user, prompt="a cat", style_image_url=STYLE_URL)

        assert submission.status == "failed"
        db.expire_all()
        generation = db.get(Generation, submission.generation_id)
        assert generation.status == "failed"
        assert generation.error_message == "Failed to queue generation"
        # the charge stands
        assert get_credits(db, user.id).credits == 3

    def test_style_reference_supplies_url_and_counts_usage(self, db, user):
        reference = create_style_reference(db, user.id, "Watercolor", STYLE_URL)

        submission = submit_generation(db, user, prompt="a cat", style_reference_id=reference.id)

        db.expire_all()
        assert db.get(Generation, submission.generation_id).style_image_url == STYLE_URL
        assert get_style_reference(db, reference.id, user.id).usage_count == 1

    def test_foreign_style_reference_is_not_found(self, db, user, make_user):
        other = make_user("mallory@example.com")
        reference = create_style_reference(db, other.id, "Theirs", STYLE_URL)

        with pytest.raises(NotFoundError):
            submit_generation(db, user, prompt="a cat", style_reference_id=reference.id)

    def test_foreign_chat_is_not_found(self, db, user, make_user):
        other = make_user("oscar@example.com")
        chat = create_chat(db, other.id)

        with pytest.raises(NotFoundError):
            submit_generation(db, user, prompt="a cat", style_image_url=STYLE_URL, chat_id=chat.id)
        assert get_credits(db, user.id).credits == 4

    def test_chat_generation_adds_messages(self, db, user):
        chat = create_chat(db, user.id)

        submission = submit_generation(db, user, prompt="a cat", style_image_url=STYLE_URL, chat_id=chat.id)

        db.expire_all()
        messages = db.query(ChatMessage).filter(ChatMessage.chat_id == chat.id).order_by(ChatMessage.position).all()
        assert [m.role for m in messages] == ["user", "assistant"]
        assert messages[0].content == "a cat"
        assert messages[1].status == "pending"
        assert messages[1].id == submission.assistant_message_id
        assert db.get(Generation, submission.generation_id).chat_id == chat.id
        assert db.get(Chat, chat.id).is_generating is True


class TestRunGeneration:

    def _submit(self, db, user, **kwargs):
        return submit_generation(db, user, prompt="a cat", style_image_url=STYLE_URL, **kwargs)

    def test_success_completes_generation(self, db, user):
        submission = self._submit(db, user)

        with patch("app.services.ai.generate_image", return_value=(make_png(16, 12), "image/png")) as generate, \
                patch("app.services.s3.upload_bytes_to_s3", return_value=RESULT_URL) as upload:
            status = run_generation(db, submission.generation_id)

        assert status == "completed"
        generate.assert_called_once()
        key = upload.call_args[0][1]
        assert key.startswith(f"generated/{user.id}/")
        assert key.endswith(".png")

        db.expire_all()
        generation = db.get(Generation, submission.generation_id)
        assert generation.generated_image_url == RESULT_URL
        assert generation.meta["dimensions"] == {"width": 16, "height": 12}
        assert generation.meta["model"]["id"] == "gemini-2.5-flash-image"
        assert generation.meta["styleImageUrl"] == STYLE_URL

    def test_upstream_failure_marks_failed(self, db, user):
        submission = self._submit(db, user)

        with patch("app.services.ai.generate_image", side_effect=UpstreamError("No image generated in response")):
            status = run_generation(db, submission.generation_id)

        assert status == "failed"
        db.expire_all()
        generation = db.get(Generation, submission.generation_id)
        assert generation.error_message == "No image generated in response"
        # no refund on failure
        assert get_credits(db, user.id).credits == 3

    def test_error_without_message_gets_default(self, db, user):
        submission = self._submit(db, user)

        with patch("app.services.ai.generate_image", side_effect=RuntimeError()):
            run_generation(db, submission.generation_id)

        db.expire_all()
        assert db.get(Generation, submission.generation_id).error_message == "Unknown error occurred"

    def test_terminal_generation_is_skipped(self, db, user):
        submission = self._submit(db, user)
        with patch("app.services.ai.generate_image", side_effect=UpstreamError("boom")):
            run_generation(db, submission.generation_id)

        with patch("app.services.ai.generate_image") as generate:
            assert run_generation(db, submission.generation_id) is None
        generate.assert_not_called()

    def test_missing_generation_is_skipped(self, db):
        assert run_generation(db, "does-not-exist") is None

    def test_chat_message_resolved_on_success(self, db, user):
        chat = create_chat(db, user.id)
        submission = self._submit(db, user, chat_id=chat.id)

        with patch("app.services.ai.generate_image", return_value=(make_png(), "image/png")), \
                patch("app.services.s3.upload_bytes_to_s3", return_value=RESULT_URL):
            run_generation(db, submission.generation_id)

        db.expire_all()
        message = db.get(ChatMessage, submission.assistant_message_id)
        assert message.status == "completed"
        assert message.images == [RESULT_URL]
        assert db.get(Chat, chat.id).is_generating is False

    def test_chat_message_resolved_on_failure(self, db, user):
        chat = create_chat(db, user.id)
        submission = self._submit(db, user, chat_id=chat.id)

        with patch("app.services.ai.generate_image", side_effect=UpstreamError("gateway timeout")):
            run_generation(db, submission.generation_id)

        db.expire_all()
        message = db.get(ChatMessage, submission.assistant_message_id)
        assert message.status == "failed"
        assert message.error == "gateway timeout"
        assert db.get(Chat, chat.id).is_generating is False
