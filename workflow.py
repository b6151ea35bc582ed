import logging
from typing import TYPE_CHECKING

from langgraph.graph import StateGraph, END

from graph_interfaces import CheckoutStage, CheckoutState

if TYPE_CHECKING:
    from nodes.checkout import CheckoutOrchestrator

logger = logging.getLogger(__name__)


def determine_after_entry(state: CheckoutState) -> str:
    """진입 검사 후 다음 노드를 결정하는 조건부 함수 (redirect면 종료)"""
    next_node = 'END' if state.redirect else 'validate_stock'
    logger.info(f"determine_after_entry: redirect='{state.redirect}' -> next='{next_node}'")
    return next_node


def determine_after_stock(state: CheckoutState) -> str:
    """재고 재검증 후 다음 노드를 결정하는 조건부 함수"""
    stage_mapping = {
        CheckoutStage.READY_TO_SUBMIT: 'price_order',
    }

    next_node = stage_mapping.get(state.stage, 'END')
    logger.info(f"determine_after_stock: stage='{state.stage.value}' -> next='{next_node}'")
    return next_node


def determine_after_pricing(state: CheckoutState) -> str:
    """금액 재계산 후 다음 노드를 결정하는 조건부 함수"""
    stage_mapping = {
        CheckoutStage.SUBMITTING: 'submit_order',
    }

    next_node = stage_mapping.get(state.stage, 'END')
    logger.info(f"determine_after_pricing: stage='{state.stage.value}' -> next='{next_node}'")
    return next_node


def create_checkout_graph(orchestrator: "CheckoutOrchestrator"):
    """LangGraph StateGraph를 사용한 결제 워크플로우 생성"""

    workflow = StateGraph(CheckoutState)

    workflow.add_node("require_entry", orchestrator.require_entry)
    workflow.add_node("validate_stock", orchestrator.validate_stock)
    workflow.add_node("price_order", orchestrator.price_order)
    workflow.add_node("submit_order", orchestrator.submit_order)

    workflow.set_entry_point("require_entry")

    workflow.add_conditional_edges(
        "require_entry",
        determine_after_entry,
        {
            "validate_stock": "validate_stock",
            "END": END
        }
    )

    workflow.add_conditional_edges(
        "validate_stock",
        determine_after_stock,
        {
            "price_order": "price_order",
            "END": END
        }
    )

    workflow.add_conditional_edges(
        "price_order",
        determine_after_pricing,
        {
            "submit_order": "submit_order",
            "END": END
        }
    )

    workflow.add_edge("submit_order", END)

    graph = workflow.compile()
    logger.info("Checkout StateGraph created successfully")
    return graph
