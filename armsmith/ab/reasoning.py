"""Human-readable explanations for selection results."""

from armsmith.io.ser import BanditDetail, FallbackDetail, HashDetail, SelectionReason, SelectionResult


def explain_selection(experiment_name: str, result: SelectionResult) -> str:
    """
    Generate explanation for why a specific key was selected.

    Args:
        experiment_name: Name of the experiment
        result: Selection result to explain

    Returns:
        Explanation sentence
    """
    key = result.chosen_key
    detail = result.detail

    if result.reason is SelectionReason.FALLBACK:
        cause = detail.cause if isinstance(detail, FallbackDetail) else "no decision"
        explanation = f"Served default '{key}' for '{experiment_name}' because of {cause}."
        if isinstance(detail, FallbackDetail) and detail.error:
            explanation += f" Error: {detail.error}"
        return explanation

    if isinstance(detail, HashDetail):
        if detail.percentage is not None and detail.bucket is None:
            relation = "includes" if detail.percentage >= 100 else "excludes"
            return (
                f"Selected '{key}' for '{experiment_name}': the rollout is at "
                f"{detail.percentage}%, which {relation} every identity."
            )
        if detail.percentage is not None:
            relation = "inside" if detail.bucket < detail.percentage else "outside"
            return (
                f"Selected '{key}' for '{experiment_name}' by consistent hashing: "
                f"bucket {detail.bucket} is {relation} the {detail.percentage}% rollout. "
                f"The same identity always lands in the same bucket."
            )
        return (
            f"Selected '{key}' for '{experiment_name}' by consistent hashing into "
            f"weighted buckets (bucket {detail.bucket})."
        )

    if isinstance(detail, BanditDetail):
        pulls = detail.pulls.get(key, 0)
        average = detail.average_rewards.get(key, 0.0)
        if result.reason is SelectionReason.FORCED_EXPLORATION:
            return (
                f"Selected '{key}' using forced exploration: it has only {pulls} pulls, "
                f"below the minimum required before {detail.policy} takes over."
            )
        mode = "exploiting" if result.reason is SelectionReason.EXPLOIT else "exploring"
        return (
            f"Selected '{key}' using {detail.policy} ({mode}). "
            f"Arm has been pulled {pulls} times with average reward {average:.3f}."
        )

    return f"Selected '{key}' for '{experiment_name}' ({result.reason.value})."
