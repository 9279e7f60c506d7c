from __future__ import annotations
from typing import Any, Callable, Dict, TypedDict

from langgraph.graph import END, START, StateGraph

from .schemas import Decision, OutcomeReport, ThreadConfig


class InterventionState(TypedDict, total=False):
    thread_id: str
    config: ThreadConfig
    event: Any
    context_text: str
    decision: Decision
    outcome: OutcomeReport


ActionHandler = Callable[[InterventionState], OutcomeReport]

# Build the orchestrated graph: decide -> (one action node | skip) -> END

def build_intervention_graph(
    decide: Callable[[ThreadConfig, Any], Decision],
    actions: Dict[str, ActionHandler],
):
    def node_decide(state: InterventionState):
        return {"decision": decide(state["config"], state["event"])}

    def route(state: InterventionState) -> str:
        decision = state["decision"]
        if decision.should_act and decision.action_kind in actions:
            return decision.action_kind
        return "skip"

    def as_node(handler: ActionHandler):
        def node(state: InterventionState):
            return {"outcome": handler(state)}
        return node

    graph = StateGraph(InterventionState)
    graph.add_node("decide", node_decide)
    for name, handler in actions.items():
        graph.add_node(name, as_node(handler))
        graph.add_edge(name, END)

    graph.add_edge(START, "decide")
    graph.add_conditional_edges("decide", route, {**{name: name for name in actions}, "skip": END})
    return graph.compile()
