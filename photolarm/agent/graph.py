# photolarm/agent/graph.py
from functools import lru_cache

from langgraph.checkpoint.base import BaseCheckpointSaver
from langgraph.checkpoint.sqlite import SqliteSaver
from langgraph.graph import END, START, StateGraph

from photolarm.agent.nodes import anchor_node, approval_node, execute_node, generate_node
from photolarm.agent.state import ScheduleState
from photolarm.db.db_config import get_sqlite_connection


def build_schedule_graph(checkpointer: BaseCheckpointSaver):
    builder = StateGraph(ScheduleState)

    builder.add_node("anchor", anchor_node)
    builder.add_node("generate", generate_node)
    builder.add_node("approval", approval_node)
    builder.add_node("execute", execute_node)

    builder.add_edge(START, "anchor")
    builder.add_edge("anchor", "generate")
    builder.add_edge("generate", "approval")
    builder.add_edge("approval", "execute")
    builder.add_edge("execute", END)

    return builder.compile(checkpointer=checkpointer)


@lru_cache(maxsize=1)
def get_schedule_graph():
    # checkpoints share the service database
    return build_schedule_graph(SqliteSaver(get_sqlite_connection()))
