"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- 狀態機：集中管理所有 Session 狀態轉換
- SessionManager：Session 建立、玩家加入、開始遊戲
- SettlementEngine：獎金池結算與兩階段出帳
- Locks：並發控制工具
"""
