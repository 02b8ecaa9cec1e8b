"""
服務層

這個 package 包含純計算邏輯與外部協作者的預設實作，不負責狀態轉換：
- SettlementService：手續費與獎金分配計算
- Ledger：託管帳戶與轉帳原語
- IdentityService：Host 身分比對
- NamingService：Session 代碼生成
"""
