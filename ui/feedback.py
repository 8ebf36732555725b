# ui/feedback.py
import streamlit as st


def force_rerun():
    fn = getattr(st, "rerun", None) or getattr(st, "experimental_rerun", None)
    if fn:
        fn()


def report(outcome, success: str = "", rerun: bool = True) -> bool:
    """Show the outcome of a synchronizer call; rerun the page after a success."""
    if not outcome.ok:
        st.error(outcome.message or "Something went wrong.")
        return False
    if outcome.message:
        # write succeeded but the refetch did not
        st.warning(outcome.message)
    elif success:
        st.success(success)
    if rerun:
        force_rerun()
    return True
