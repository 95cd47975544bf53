"""XML renderers for improve requests and responses.

Values are embedded in CDATA sections. ``]]>`` cannot appear inside CDATA, so
it is split across two sections: ``]]]]><![CDATA[>``.
"""

from skidscan.parsing.models import ImproveRequest, ImproveResponse


def sanitize_for_cdata(content: str) -> str:
    if not content:
        return ""
    return content.replace("]]>", "]]]]><![CDATA[>")


def _cdata(content: str) -> str:
    return f"<![CDATA[{sanitize_for_cdata(content)}]]>"


def render_improve_xml(data: ImproveRequest) -> str:
    return (
        "<improve>\n"
        f"  <problem>{_cdata(data.problem)}</problem>\n"
        f"  <answer>{_cdata(data.answer)}</answer>\n"
        f"  <explanation>{_cdata(data.explanation)}</explanation>\n"
        f"  <user_suggestion>{_cdata(data.user_suggestion)}</user_suggestion>\n"
        "</improve>"
    )


def render_improve_response_xml(data: ImproveResponse) -> str:
    return (
        "<solution>\n"
        f"  <improved_answer>{_cdata(data.improved_answer)}</improved_answer>\n"
        f"  <improved_explanation>{_cdata(data.improved_explanation)}</improved_explanation>\n"
        "</solution>"
    )
