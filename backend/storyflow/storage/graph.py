"""Kùzu Graph 存储封装，用于持久化剧本目录与分支图。"""

from __future__ import annotations

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Sequence

import kuzu

from storyflow.errors import NotFoundError
from storyflow.models import (
    Branch,
    CreateScriptParams,
    Layer,
    NodeMetadata,
    Script,
    ScriptTag,
    StoryNode,
    UpdateScriptParams,
    utc_now,
)
from storyflow.storage.catalog import apply_script_update, new_script

_LAYER_COLUMNS = (
    "l.id, l.layer_order, l.title, l.description, l.is_collapsed, "
    "l.created_at, l.updated_at"
)
_NODE_COLUMNS = (
    "l.id, n.id, n.node_order, n.title, n.content, n.duration, "
    "n.position_x, n.position_y, n.camera_type, n.characters_json, n.scene, "
    "n.created_at, n.updated_at, r.seq"
)
_BRANCH_COLUMNS = (
    "a.id, c.id, b.id, b.branch_label, b.branch_type, b.branch_order, "
    "b.created_at, b.seq"
)
_SCRIPT_COLUMNS = (
    "s.id, s.user_id, s.title, s.description, s.outline, s.world_setting_json, "
    "s.status, s.is_auto_generated, s.created_at, s.updated_at, s.deleted_at"
)


class GraphStorage:
    """封装 Kùzu 的基本写入与查询；节点/层主键为 script_id::id 组合键。"""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db = kuzu.Database(str(self.db_path))
        self.conn = kuzu.Connection(self.db)
        self._ensure_schema()

    def close(self) -> None:
        self.conn.close()
        self.db.close()

    def _table_columns(self, table: str) -> set[str]:
        result = self.conn.execute(f"CALL table_info('{table}') RETURN *;")
        return {row[1] for row in result}

    def _ensure_columns(self, table: str, columns: dict[str, str]) -> None:
        existing = self._table_columns(table)
        for name, type_ in columns.items():
            if name in existing:
                continue
            self.conn.execute(f"ALTER TABLE {table} ADD {name} {type_};")

    def _ensure_schema(self) -> None:
        self.conn.execute(
            """
            CREATE NODE TABLE IF NOT EXISTS Script(
                id STRING,
                user_id STRING,
                title STRING,
                description STRING,
                outline STRING,
                world_setting_json STRING,
                status STRING,
                is_auto_generated BOOLEAN,
                created_at STRING,
                updated_at STRING,
                deleted_at STRING,
                PRIMARY KEY (id)
            );
            """
        )
        self.conn.execute(
            """
            CREATE NODE TABLE IF NOT EXISTS ScriptTag(
                id STRING,
                script_id STRING,
                tag_name STRING,
                color STRING,
                created_at STRING,
                seq INT64,
                PRIMARY KEY (id)
            );
            """
        )
        self.conn.execute(
            """
            CREATE NODE TABLE IF NOT EXISTS Layer(
                key STRING,
                id STRING,
                script_id STRING,
                layer_order INT64,
                title STRING,
                description STRING,
                created_at STRING,
                updated_at STRING,
                PRIMARY KEY (key)
            );
            """
        )
        self.conn.execute(
            """
            CREATE NODE TABLE IF NOT EXISTS StoryNode(
                key STRING,
                id STRING,
                script_id STRING,
                layer_id STRING,
                node_order INT64,
                title STRING,
                content STRING,
                duration INT64,
                camera_type STRING,
                characters_json STRING,
                scene STRING,
                created_at STRING,
                updated_at STRING,
                PRIMARY KEY (key)
            );
            """
        )
        self.conn.execute(
            """
            CREATE REL TABLE IF NOT EXISTS LayerContainsNode(
                FROM Layer TO StoryNode,
                script_id STRING,
                seq INT64
            );
            """
        )
        self.conn.execute(
            """
            CREATE REL TABLE IF NOT EXISTS Branch(
                FROM StoryNode TO StoryNode,
                id STRING,
                script_id STRING,
                branch_label STRING,
                branch_type STRING,
                branch_order INT64,
                created_at STRING,
                seq INT64
            );
            """
        )

        # 早期库没有折叠标记与画布坐标列。
        self._ensure_columns("Layer", {"is_collapsed": "BOOLEAN"})
        self._ensure_columns(
            "StoryNode", {"position_x": "DOUBLE", "position_y": "DOUBLE"}
        )

    @staticmethod
    def _esc(value: str) -> str:
        return value.replace("\\", "\\\\").replace("'", "\\'")

    @staticmethod
    def _key(*, script_id: str, entity_id: str) -> str:
        return f"{script_id}::{entity_id}"

    def _sql_str(self, value: str | None) -> str:
        if value is None:
            return "NULL"
        return f"'{self._esc(str(value))}'"

    @staticmethod
    def _sql_bool(value: bool | None) -> str:
        if value is None:
            return "NULL"
        return "true" if bool(value) else "false"

    @staticmethod
    def _sql_int(value: int | None) -> str:
        if value is None:
            return "NULL"
        return str(int(value))

    @staticmethod
    def _sql_float(value: float | None) -> str:
        if value is None:
            return "NULL"
        return repr(float(value))

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        self.conn.execute("BEGIN TRANSACTION;")
        try:
            yield
        except BaseException:
            self.conn.execute("ROLLBACK;")
            raise
        self.conn.execute("COMMIT;")

    # 分支图 -----------------------------------------------------------------

    def read_layers(self, script_id: str) -> list[Layer]:
        sid = self._esc(script_id)
        layer_rows = self.conn.execute(
            f"MATCH (l:Layer) WHERE l.script_id = '{sid}' "
            f"RETURN {_LAYER_COLUMNS} ORDER BY l.layer_order;"
        )
        layers: list[Layer] = []
        layer_map: dict[str, Layer] = {}
        for row in layer_rows:
            layer = Layer(
                id=row[0],
                script_id=script_id,
                layer_order=row[1],
                title=row[2] or "",
                description=row[3],
                is_collapsed=bool(row[4]),
                created_at=row[5],
                updated_at=row[6],
            )
            layers.append(layer)
            layer_map[layer.id] = layer

        node_rows = self.conn.execute(
            "MATCH (l:Layer)-[r:LayerContainsNode]->(n:StoryNode) "
            f"WHERE l.script_id = '{sid}' "
            f"RETURN {_NODE_COLUMNS} ORDER BY r.seq;"
        )
        node_map: dict[str, StoryNode] = {}
        for row in node_rows:
            layer = layer_map.get(row[0])
            if layer is None:
                raise ValueError(
                    f"StoryNode owned by unknown layer: script_id={script_id} layer_id={row[0]}"
                )
            node = StoryNode(
                id=row[1],
                layer_id=row[0],
                node_order=row[2],
                title=row[3] or "",
                content=row[4] or "",
                duration=row[5],
                position_x=row[6],
                position_y=row[7],
                metadata=NodeMetadata(
                    camera_type=row[8],
                    characters=set(json.loads(row[9] or "[]")),
                    scene=row[10],
                ),
                created_at=row[11],
                updated_at=row[12],
            )
            layer.nodes.append(node)
            node_map[node.id] = node

        branch_rows = self.conn.execute(
            "MATCH (a:StoryNode)-[b:Branch]->(c:StoryNode) "
            f"WHERE b.script_id = '{sid}' "
            f"RETURN {_BRANCH_COLUMNS} ORDER BY b.seq;"
        )
        for row in branch_rows:
            owner = node_map.get(row[0])
            if owner is None:
                raise ValueError(
                    f"Branch source missing: script_id={script_id} branch_id={row[2]}"
                )
            owner.branches.append(
                Branch(
                    id=row[2],
                    from_node_id=row[0],
                    to_node_id=row[1],
                    branch_label=row[3] or "",
                    branch_type=row[4],
                    branch_order=row[5],
                    created_at=row[6],
                )
            )
        return layers

    def write_layers(self, script_id: str, layers: Sequence[Layer]) -> None:
        """整图覆盖写入：先清空该剧本的层与节点，再按顺序重建。"""
        sid = self._esc(script_id)
        with self._transaction():
            self.conn.execute(
                f"MATCH (n:StoryNode) WHERE n.script_id = '{sid}' DETACH DELETE n;"
            )
            self.conn.execute(
                f"MATCH (l:Layer) WHERE l.script_id = '{sid}' DETACH DELETE l;"
            )
            node_seq = 0
            for layer in layers:
                if layer.script_id != script_id:
                    raise ValueError(
                        "Layer belongs to another script: "
                        f"layer_id={layer.id} script_id={layer.script_id}"
                    )
                layer_key = self._key(script_id=script_id, entity_id=layer.id)
                self.conn.execute(
                    (
                        "CREATE (:Layer {"
                        f"key: '{self._esc(layer_key)}', "
                        f"id: '{self._esc(layer.id)}', "
                        f"script_id: '{sid}', "
                        f"layer_order: {self._sql_int(layer.layer_order)}, "
                        f"title: {self._sql_str(layer.title)}, "
                        f"description: {self._sql_str(layer.description)}, "
                        f"is_collapsed: {self._sql_bool(layer.is_collapsed)}, "
                        f"created_at: {self._sql_str(layer.created_at)}, "
                        f"updated_at: {self._sql_str(layer.updated_at)}"
                        "});"
                    )
                )
                for node in layer.nodes:
                    self._create_node(script_id, layer_key, node, seq=node_seq)
                    node_seq += 1

            branch_seq = 0
            for layer in layers:
                for node in layer.nodes:
                    for branch in node.branches:
                        self._create_branch(script_id, branch, seq=branch_seq)
                        branch_seq += 1

    def _create_node(
        self, script_id: str, layer_key: str, node: StoryNode, *, seq: int
    ) -> None:
        node_key = self._key(script_id=script_id, entity_id=node.id)
        characters_json = json.dumps(sorted(node.metadata.characters), ensure_ascii=False)
        self.conn.execute(
            (
                "CREATE (:StoryNode {"
                f"key: '{self._esc(node_key)}', "
                f"id: '{self._esc(node.id)}', "
                f"script_id: '{self._esc(script_id)}', "
                f"layer_id: '{self._esc(node.layer_id)}', "
                f"node_order: {self._sql_int(node.node_order)}, "
                f"title: {self._sql_str(node.title)}, "
                f"content: {self._sql_str(node.content)}, "
                f"duration: {self._sql_int(node.duration)}, "
                f"position_x: {self._sql_float(node.position_x)}, "
                f"position_y: {self._sql_float(node.position_y)}, "
                f"camera_type: {self._sql_str(node.metadata.camera_type)}, "
                f"characters_json: {self._sql_str(characters_json)}, "
                f"scene: {self._sql_str(node.metadata.scene)}, "
                f"created_at: {self._sql_str(node.created_at)}, "
                f"updated_at: {self._sql_str(node.updated_at)}"
                "});"
            )
        )
        self.conn.execute(
            (
                "MATCH (l:Layer), (n:StoryNode) "
                f"WHERE l.key = '{self._esc(layer_key)}' "
                f"AND n.key = '{self._esc(node_key)}' "
                "CREATE (l)-[:LayerContainsNode {"
                f"script_id: '{self._esc(script_id)}', seq: {seq}"
                "}]->(n);"
            )
        )

    def _create_branch(self, script_id: str, branch: Branch, *, seq: int) -> None:
        source_key = self._key(script_id=script_id, entity_id=branch.from_node_id)
        target_key = self._key(script_id=script_id, entity_id=branch.to_node_id)
        result = self.conn.execute(
            (
                "MATCH (a:StoryNode), (c:StoryNode) "
                f"WHERE a.key = '{self._esc(source_key)}' "
                f"AND c.key = '{self._esc(target_key)}' "
                "CREATE (a)-[:Branch {"
                f"id: '{self._esc(branch.id)}', "
                f"script_id: '{self._esc(script_id)}', "
                f"branch_label: {self._sql_str(branch.branch_label)}, "
                f"branch_type: {self._sql_str(branch.branch_type.value)}, "
                f"branch_order: {self._sql_int(branch.branch_order)}, "
                f"created_at: {self._sql_str(branch.created_at)}, "
                f"seq: {seq}"
                "}]->(c) RETURN a.id;"
            )
        )
        if not next(iter(result), None):
            raise ValueError(
                "Branch endpoint missing: "
                f"script_id={script_id} branch_id={branch.id} "
                f"from_node_id={branch.from_node_id} to_node_id={branch.to_node_id}"
            )

    def write_node_content(
        self,
        *,
        script_id: str,
        node_id: str,
        content: str,
        title: str | None = None,
    ) -> StoryNode | None:
        node_key = self._key(script_id=script_id, entity_id=node_id)
        title_clause = "" if title is None else f", n.title = {self._sql_str(title)}"
        result = self.conn.execute(
            (
                "MATCH (n:StoryNode) "
                f"WHERE n.key = '{self._esc(node_key)}' "
                f"SET n.content = {self._sql_str(content)}, "
                f"n.updated_at = {self._sql_str(utc_now())}{title_clause} "
                "RETURN n.id LIMIT 1;"
            )
        )
        if not next(iter(result), None):
            return None
        for layer in self.read_layers(script_id):
            for node in layer.nodes:
                if node.id == node_id:
                    return node
        return None

    def list_graph_script_ids(self) -> list[str]:
        result = self.conn.execute(
            "MATCH (l:Layer) RETURN DISTINCT l.script_id ORDER BY l.script_id;"
        )
        return [row[0] for row in result]

    # 剧本目录 ---------------------------------------------------------------

    def _row_to_script(self, row: Sequence[Any]) -> Script:
        world_setting = json.loads(row[5]) if row[5] else None
        return Script(
            id=row[0],
            user_id=row[1],
            title=row[2],
            description=row[3],
            outline=row[4],
            world_setting=world_setting,
            status=row[6],
            is_auto_generated=bool(row[7]),
            created_at=row[8],
            updated_at=row[9],
            deleted_at=row[10],
            tags=self._read_tags(row[0]),
        )

    def _read_tags(self, script_id: str) -> list[ScriptTag]:
        result = self.conn.execute(
            (
                "MATCH (t:ScriptTag) "
                f"WHERE t.script_id = '{self._esc(script_id)}' "
                "RETURN t.id, t.tag_name, t.color, t.created_at, t.seq ORDER BY t.seq;"
            )
        )
        return [
            ScriptTag(
                id=row[0],
                script_id=script_id,
                tag_name=row[1],
                color=row[2],
                created_at=row[3],
            )
            for row in result
        ]

    def read_script(self, script_id: str) -> Script | None:
        result = self.conn.execute(
            (
                "MATCH (s:Script) "
                f"WHERE s.id = '{self._esc(script_id)}' "
                f"RETURN {_SCRIPT_COLUMNS} LIMIT 1;"
            )
        )
        row = next(iter(result), None)
        if not row:
            return None
        return self._row_to_script(row)

    def read_scripts(self) -> list[Script]:
        result = self.conn.execute(
            (
                "MATCH (s:Script) WHERE s.deleted_at IS NULL "
                f"RETURN {_SCRIPT_COLUMNS} ORDER BY s.created_at;"
            )
        )
        rows = list(result)
        return [self._row_to_script(row) for row in rows]

    def write_script(self, script: Script) -> None:
        sid = self._esc(script.id)
        world_setting_json = (
            None
            if script.world_setting is None
            else json.dumps(script.world_setting, ensure_ascii=False)
        )
        with self._transaction():
            self.conn.execute(
                (
                    f"MERGE (s:Script {{id: '{sid}'}}) SET "
                    f"s.user_id = {self._sql_str(script.user_id)}, "
                    f"s.title = {self._sql_str(script.title)}, "
                    f"s.description = {self._sql_str(script.description)}, "
                    f"s.outline = {self._sql_str(script.outline)}, "
                    f"s.world_setting_json = {self._sql_str(world_setting_json)}, "
                    f"s.status = {self._sql_str(script.status.value)}, "
                    f"s.is_auto_generated = {self._sql_bool(script.is_auto_generated)}, "
                    f"s.created_at = {self._sql_str(script.created_at)}, "
                    f"s.updated_at = {self._sql_str(script.updated_at)}, "
                    f"s.deleted_at = {self._sql_str(script.deleted_at)};"
                )
            )
            self.conn.execute(
                f"MATCH (t:ScriptTag) WHERE t.script_id = '{sid}' DELETE t;"
            )
            for seq, tag in enumerate(script.tags):
                self.conn.execute(
                    (
                        "CREATE (:ScriptTag {"
                        f"id: '{self._esc(tag.id)}', "
                        f"script_id: '{sid}', "
                        f"tag_name: {self._sql_str(tag.tag_name)}, "
                        f"color: {self._sql_str(tag.color)}, "
                        f"created_at: {self._sql_str(tag.created_at)}, "
                        f"seq: {seq}"
                        "});"
                    )
                )

    def _require_script(self, script_id: str) -> Script:
        script = self.read_script(script_id)
        if script is None or script.deleted_at:
            raise NotFoundError("script", script_id)
        return script

    # 异步端口 ---------------------------------------------------------------

    async def load_graph(self, script_id: str) -> list[Layer]:
        return self.read_layers(script_id)

    async def save_graph(self, script_id: str, layers: Sequence[Layer]) -> None:
        self.write_layers(script_id, layers)

    async def update_node_content(
        self,
        node_id: str,
        content: str,
        layers: Sequence[Layer],
        title: str | None = None,
    ) -> StoryNode | None:
        # 节点主键带 script_id 前缀，由调用方的层列表定位所属剧本。
        script_id = next(
            (
                layer.script_id
                for layer in layers
                if any(node.id == node_id for node in layer.nodes)
            ),
            None,
        )
        if script_id is None:
            return None
        return self.write_node_content(
            script_id=script_id, node_id=node_id, content=content, title=title
        )

    async def list_scripts(self) -> list[Script]:
        return self.read_scripts()

    async def get_script(self, script_id: str) -> Script | None:
        script = self.read_script(script_id)
        if script is None or script.deleted_at:
            return None
        return script

    async def create_script(self, params: CreateScriptParams) -> Script:
        script = new_script(params)
        self.write_script(script)
        return script

    async def update_script(self, script_id: str, params: UpdateScriptParams) -> Script:
        updated = apply_script_update(self._require_script(script_id), params)
        self.write_script(updated)
        return updated

    async def delete_script(self, script_id: str) -> None:
        script = self._require_script(script_id)
        script.deleted_at = utc_now()
        self.write_script(script)

    async def rename_script(self, script_id: str, title: str) -> Script:
        return await self.update_script(script_id, UpdateScriptParams(title=title))

    async def update_script_tags(self, script_id: str, tags: Sequence[str]) -> Script:
        return await self.update_script(script_id, UpdateScriptParams(tags=list(tags)))
