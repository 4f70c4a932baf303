"""Multi-file edit agent: scan, ask the model for diffs, confirm, apply."""

from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Tuple
import logging

from ..core.errors import ConfigurationError, DiffApplyError
from ..core.types import ChatMessage, CompletionRequest, TaskType
from ..models.change import EditOptions, EditOutcome, FileDiff, FileEditResult, ScannedFile
from ..tools.repo_io import safe_join, scan_files
from ..tools.unified_diff import apply_file_diff, parse_unified_diff, render_preview

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are an expert code editor. Produce unified diffs that implement the requested change.
Rules:
1. Output only diffs, no explanations and no markdown.
2. Start every file's diff with "diff --git a/<path> b/<path>", followed by "--- a/<path>" and "+++ b/<path>".
3. Use "@@ -start,count +start,count @@" hunk headers with accurate line numbers.
4. Prefix unchanged lines with a space, removed lines with "-", added lines with "+".
5. Include a few unchanged context lines around each change.
6. Keep changes minimal and preserve the existing style."""


class EditStage(str, Enum):
    SCANNING = "scanning"
    GENERATING = "generating"
    PARSING = "parsing"
    CONFIRMING = "confirming"
    APPLYING = "applying"
    DONE = "done"


def build_edit_prompt(prompt: str, files: Sequence[ScannedFile]) -> str:
    """Embed every scanned file, fenced and labelled with its path, ahead of the request."""
    parts = ["Files to edit:", ""]
    for index, f in enumerate(files, 1):
        parts.append(f"File {index}: {f.path}")
        parts.append("```")
        parts.append(f.content.rstrip("\n"))
        parts.append("```")
        parts.append("")
    parts.append(f"Requested changes: {prompt}")
    return "\n".join(parts)


class MultiFileEditor:
    """Runs one edit through SCANNING -> GENERATING -> PARSING -> CONFIRMING -> APPLYING.

    Args:
        client: Completion client exposing ``chat_completion(CompletionRequest)``
        prompter: Object with ``show(text)`` and ``confirm(message, default)``;
            required for interactive edits
    """

    def __init__(self, client, prompter=None):
        self.client = client
        self.prompter = prompter
        self.stage: Optional[EditStage] = None

    def _enter(self, stage: EditStage) -> None:
        self.stage = stage
        logger.debug(f"Edit stage: {stage.value}", extra={"stage": stage.value})

    def _show(self, text: str) -> None:
        if self.prompter is not None:
            self.prompter.show(text)
        else:
            logger.info(text)

    def generate_diffs(
        self,
        prompt: str,
        files: Sequence[ScannedFile],
        model: Optional[str] = None,
    ) -> Tuple[str, str]:
        """Ask the model for unified diffs covering the scanned files.

        Returns:
            (raw diff text, model that answered)

        Raises:
            ConfigurationError: If no API key is available
            CompletionFailedError: If every candidate model failed
        """
        request = CompletionRequest(
            messages=[
                ChatMessage(role="system", content=SYSTEM_PROMPT),
                ChatMessage(role="user", content=build_edit_prompt(prompt, files)),
            ],
            task_type=TaskType.MULTI_EDIT,
            prompt=prompt,
            model=model,
            temperature=0.1,
        )
        result = self.client.chat_completion(request)
        return result.content, result.model

    def apply_diff(self, diff: FileDiff, options: EditOptions) -> FileEditResult:
        """Apply one file diff; failures are returned, not raised."""
        rel = diff.target_path
        try:
            abs_path = Path(safe_join(options.root, rel))
        except ValueError as e:
            logger.error(f"Refusing to write {rel}: {e}", extra={"path": rel})
            return FileEditResult(path=rel, success=False, dry_run=options.dry_run, error=str(e))

        exists = abs_path.is_file()
        try:
            if exists:
                with open(abs_path, "r", encoding="utf-8", newline="") as f:
                    original = f.read()
            else:
                logger.warning(f"File not found: {rel} (will be created)", extra={"path": rel})
                original = ""

            new_content, applied, skipped = apply_file_diff(diff, original)
            result = FileEditResult(
                path=rel,
                success=True,
                hunks_applied=applied,
                hunks_skipped=skipped,
                created=not exists,
                deleted=diff.is_deleted_file and not new_content,
                dry_run=options.dry_run,
            )
            if skipped:
                logger.info(f"{rel}: {skipped} hunk(s) already applied", extra={"path": rel})
            if options.dry_run or applied == 0:
                return result

            if options.backup and exists:
                backup = abs_path.with_name(f"{abs_path.name}.{options.backup_suffix}")
                with open(backup, "w", encoding="utf-8", newline="") as f:
                    f.write(original)
                result.backup_path = f"{rel}.{options.backup_suffix}"

            if result.deleted:
                if exists:
                    abs_path.unlink()
            else:
                abs_path.parent.mkdir(parents=True, exist_ok=True)
                with open(abs_path, "w", encoding="utf-8", newline="") as f:
                    f.write(new_content)

            logger.info(f"Updated {rel} ({applied} change(s))", extra={"path": rel})
            return result

        except DiffApplyError as e:
            logger.error(str(e), extra={"path": rel})
            return FileEditResult(path=rel, success=False, dry_run=options.dry_run, error=str(e))
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to update {rel}: {e}", extra={"path": rel})
            return FileEditResult(path=rel, success=False, dry_run=options.dry_run, error=str(e))

    def apply_diffs(self, diffs: Sequence[FileDiff], options: EditOptions) -> List[FileEditResult]:
        """Apply each file independently; one failure never stops the rest."""
        return [self.apply_diff(diff, options) for diff in diffs]

    def edit_files(
        self,
        prompt: str,
        glob_pattern: str,
        options: Optional[EditOptions] = None,
    ) -> EditOutcome:
        """Run a full multi-file edit.

        Args:
            prompt: Natural-language change request
            glob_pattern: Files to edit, relative to ``options.root``
            options: Edit options (defaults when omitted)

        Returns:
            Batch outcome with per-file results

        Raises:
            ConfigurationError: If an interactive edit has no prompter or no API key
            CompletionFailedError: If every candidate model failed
        """
        options = options or EditOptions()
        if options.interactive and not options.dry_run and self.prompter is None:
            raise ConfigurationError("Interactive edits need a prompter; pass --no-interactive")

        self._enter(EditStage.SCANNING)
        logger.info(f"Scanning files matching: {glob_pattern}")
        files = scan_files(
            options.root,
            glob_pattern,
            max_files=options.max_files,
            max_size=options.max_file_size,
            exclude_dirs=options.exclude_dirs,
        )
        if not files:
            self._enter(EditStage.DONE)
            return EditOutcome(success=False, message="No files found")
        logger.info(f"Found {len(files)} file(s) to analyze")

        self._enter(EditStage.GENERATING)
        diff_text, model = self.generate_diffs(prompt, files, options.model)

        self._enter(EditStage.PARSING)
        diffs = parse_unified_diff(diff_text)
        if not diffs:
            self._enter(EditStage.DONE)
            return EditOutcome(success=False, message="No changes generated", model=model)
        logger.info(f"Generated changes for {len(diffs)} file(s) using model: {model}", extra={"model": model})

        if options.dry_run or options.interactive:
            self._show(render_preview(diffs))

        if options.interactive and not options.dry_run:
            self._enter(EditStage.CONFIRMING)
            if not self.prompter.confirm(f"Apply these changes to {len(diffs)} file(s)?", default=False):
                self._enter(EditStage.DONE)
                return EditOutcome(success=False, message="Cancelled by user", diffs=diffs, model=model)

        self._enter(EditStage.APPLYING)
        results = self.apply_diffs(diffs, options)
        self._enter(EditStage.DONE)

        successful = [r for r in results if r.success]
        failed = [r for r in results if not r.success]
        if options.dry_run:
            message = "Dry run completed"
        else:
            message = f"Updated {len(successful)} file(s), {len(failed)} failed"

        return EditOutcome(
            success=len(successful) > 0,
            message=message,
            successful_count=len(successful),
            failed_count=len(failed),
            results=results,
            diffs=diffs,
            model=model,
        )


def edit_files(
    prompt: str,
    glob_pattern: str,
    options: Optional[EditOptions] = None,
    *,
    client,
    prompter=None,
) -> EditOutcome:
    """Convenience wrapper around MultiFileEditor.edit_files."""
    return MultiFileEditor(client, prompter).edit_files(prompt, glob_pattern, options)
