"""
utils/constants.py

Purpose: Centralized static content

- All user-facing messages (Telegram HTML)
- Button labels
- Callback data prefixes

(Prevents hardcoding across the codebase)
"""

# ============================================================
# WELCOME & MENU
# ============================================================

WELCOME_MESSAGE = """<b>🎁 WELCOME TO {bot_name} 🎁</b>

Hi <b>{name}</b>!
Premium digital accounts, delivered instantly.

💰 Balance: <b>{balance}</b>
📦 Products in stock: <b>{stock}</b>

Pick an option below:"""

HELP_MESSAGE = """<b>ℹ️ How it works</b>

1️⃣ Top up your balance with /deposit
2️⃣ Browse the catalog with /catalog
3️⃣ Buy: the account details are sent here right away

Other commands:
/balance - show your balance
/cancel - stop the current step

Questions? Contact {admin}."""

BALANCE_MESSAGE = "💰 Your balance: <b>{balance}</b>"

# ============================================================
# CATALOG & PURCHASE
# ============================================================

CATALOG_HEADER = "<b>👑 ALL PRODUCTS 👑</b>\nTap a product to see the details 🛍️"

CATALOG_EMPTY = "⚠️ No products available right now.\nContact {admin} to request stock."

CATALOG_LINE = "<b>[ {index} ] {name}</b>\nPrice: {price} | Stock: {count} ✅"

PRODUCT_DETAIL = """<b>{name}</b>

🧾 <b>Description:</b> {description}
💰 <b>Price:</b> {price}
📦 <b>Stock:</b> {count}
#️⃣ <b>Quantity:</b> {quantity}
💵 <b>Total:</b> {total}
💳 <b>Your balance:</b> {balance}

⚠️ Read the description before buying. Buying means you accept it."""

PURCHASE_SUCCESS = """✅ <b>Purchase Successful</b>

<b>Product:</b> {name}
<b>Quantity:</b> {quantity}

{accounts}

💳 Paid: {total}
💰 Remaining balance: {balance}
⏰ {time}"""

PURCHASE_ACCOUNT = """<b>{index}.</b> <b>Email:</b> <code>{email}</code>
<b>Password:</b> <code>{password}</code>
<b>Note:</b> {note}"""

ERROR_STOCK_GONE = "❌ Sorry, that item was just sold. Please pick another one."

ERROR_NOT_ENOUGH_STOCK = "❌ Only {available} left in stock, you asked for {requested}. Open the product again to pick a new quantity."

ERROR_NOT_REGISTERED = "⚠️ Please send /start first to create your account."

ERROR_INSUFFICIENT_BALANCE = "❌ Insufficient balance.\nPrice: {price}\nYour balance: {balance}\n\nTop up with /deposit."

# ============================================================
# DEPOSIT
# ============================================================

ASK_DEPOSIT_NOMINAL = """💳 <b>Deposit</b>

Send the amount you want to top up.
Minimum: {min}
Maximum: {max}
Bonus: {bonus}%

Send /cancel to stop."""

DEPOSIT_INSTRUCTIONS = """🧾 <b>DEPOSIT REQUEST</b>

🆔 Transaction: <code>{transaction_id}</code>
💵 Nominal: {nominal}
🎁 Bonus: {bonus}
💰 Balance to add: <b>{total}</b>
⏳ Expires in {ttl} minutes

Scan the QR and pay exactly <b>{nominal}</b>, then tap <b>I Have Paid</b>."""

DEPOSIT_REPLACED_NOTE = "ℹ️ Your previous deposit request was replaced by this one."

DEPOSIT_CONFIRMED = """✅ <b>Deposit Confirmed</b>

🆔 Transaction: <code>{transaction_id}</code>
💵 Nominal: {nominal}
🎁 Bonus: {bonus}
💰 Added: {total}
💳 New balance: <b>{balance}</b>"""

DEPOSIT_CANCELLED = "❌ <b>Deposit Cancelled</b>\n🆔 <code>{transaction_id}</code>"
DEPOSIT_SUPERSEDED = "ℹ️ <b>Deposit Replaced</b>\n🆔 <code>{transaction_id}</code>\nA newer request replaced this one."

DEPOSIT_EXPIRED = "⏰ <b>Deposit Expired</b>\n🆔 <code>{transaction_id}</code>\nCreate a new request with /deposit."

ERROR_INVALID_NOMINAL = "⚠️ Invalid amount. Send a whole number between {min} and {max}."

ERROR_NO_PENDING_PAYMENT = "⚠️ You have no pending deposit."
ERROR_DEPOSIT_REPLACED = "⚠️ That deposit request was replaced by a newer one. Use the buttons on the latest request."

# ============================================================
# MODERATION
# ============================================================

BANNED_MESSAGE = "❌ <b>Access Denied</b>\nYou are banned. Contact {admin} if this is a mistake."

BANNED_TOAST = "❌ Access denied. You are banned."

AUTO_BAN_MESSAGE = "❌ You have been blocked for spamming. Contact {admin} if this is a mistake."

UNBANNED_MESSAGE = "✅ Your account has been unblocked by the admin."

ADMIN_BANNED_USER_MESSAGE = "❌ You have been blocked: {reason}"

ERROR_ADMIN_ONLY = "❌ Access denied. Admin only."

ERROR_GENERIC = "❌ Something went wrong. Please try again in a moment."

ERROR_STORAGE = "⚠️ The shop is busy right now. Please try again in a moment."

SESSION_CANCELLED = "✅ Cancelled."

# ============================================================
# ADMIN
# ============================================================

ADMIN_HELP = """<b>👑 Admin Commands</b>

/admin - console
/restock - add stock (one per line: {restock_format})
/addbalance &lt;user_id&gt; &lt;±amount&gt;
/ban &lt;user_id&gt; [reason]
/unban &lt;user_id&gt;
/broadcast [text]
/confirmdeposit &lt;user_id&gt;
/canceldeposit &lt;user_id&gt;
/setnotif &lt;chat_id&gt;
/setbonus &lt;percent&gt;"""

ADMIN_CONSOLE = "<b>👑 ADMIN CONSOLE</b>\nMembers: <code>{users}</code>\nStock: <code>{stock}</code>\nTransactions: <code>{transactions}</code>"

ASK_RESTOCK = "📦 Send the stock lines, one account per line:\n<code>{restock_format}</code>\n\nSend /cancel to stop."

ASK_BROADCAST = "📣 Send the broadcast text.\n\nSend /cancel to stop."

RESTOCK_RESULT = "✅ Added {added} account(s)."

BROADCAST_STARTED = "📣 Broadcast started. You will get a report when it finishes."
BROADCAST_RESULT = "📣 Broadcast finished.\nSent: {sent}\nFailed: {failed}"

ADMIN_USAGE = "⚠️ Usage: <code>{usage}</code>"

BALANCE_ADJUSTED = "✅ Balance of <code>{user_id}</code> is now <b>{balance}</b>"

USER_BANNED_RESULT = "🚫 User <code>{user_id}</code> banned."

USER_UNBANNED_RESULT = "✅ User <code>{user_id}</code> unbanned."

ADMIN_DEPOSIT_CONFIRMED = "✅ Deposit <code>{transaction_id}</code> confirmed. {user_id} now has <b>{balance}</b>."

ADMIN_DEPOSIT_CANCELLED = "❌ Deposit <code>{transaction_id}</code> of {user_id} cancelled."

LOG_CHANNEL_SET = "✅ Log channel set to <code>{chat_id}</code>."

BONUS_SET = "✅ Deposit bonus set to <b>{percentage}%</b>."

RESTOCK_SKIPPED = "Skipped (already in stock): {keys}"

RESTOCK_ERRORS = "Rejected lines:\n{errors}"

ADMIN_STOCK_HEADER = "<b>📦 STOCK</b>"

ADMIN_PENDING_HEADER = "<b>⏳ PENDING DEPOSITS</b>"

ADMIN_PENDING_LINE = "<code>{user_id}</code> - {transaction_id} - {total} ({age} min)"

ADMIN_SPAM_HEADER = "<b>🚫 ANTI-SPAM</b>\nLimit: {limit} messages / {window} ms"

ADMIN_EMPTY_PANEL = "Nothing here."

TOAST_DEPOSIT_CONFIRMED = "✅ Deposit confirmed"

TOAST_DEPOSIT_CANCELLED = "❌ Deposit cancelled"

ERROR_INVALID_INPUT = "⚠️ {reason}"

# ============================================================
# BUTTONS
# ============================================================

BUTTON_CATALOG = "🛍️ BUY PRODUCT"
BUTTON_DEPOSIT = "💳 DEPOSIT"
BUTTON_BALANCE = "💰 BALANCE"
BUTTON_CHAT_ADMIN = "📞 CHAT ADMIN"
BUTTON_BACK = "🔙 Back"
BUTTON_BUY = "💳 BUY WITH BALANCE"
BUTTON_DECREASE = "➖"
BUTTON_INCREASE = "➕"
BUTTON_TAKE_ALL = "📦 TAKE ALL"
BUTTON_CONFIRM_PAID = "✅ I Have Paid"
BUTTON_CANCEL = "❌ Cancel"
BUTTON_ADMIN_STOCK = "📦 Stock"
BUTTON_ADMIN_PENDING = "⏳ Pending"
BUTTON_ADMIN_SPAM = "🚫 Anti-Spam"

# ============================================================
# AUDIT LOG TITLES
# ============================================================

LOG_AUTO_BAN = "🚫 Auto-Ban (Anti-Spam)"
LOG_BAN = "🚫 Ban User"
LOG_UNBAN = "✅ Unban User"
LOG_PURCHASE = "📦 Purchase"
LOG_DEPOSIT_PENDING = "⏳ Deposit Pending"
LOG_DEPOSIT_CONFIRMED = "💰 Deposit Confirmed"
LOG_DEPOSIT_CANCELLED = "❌ Deposit Cancelled"
LOG_DEPOSIT_EXPIRED = "⏰ Deposit Expired"
LOG_RESTOCK = "➕ Restock"
LOG_BALANCE_ADJUSTED = "🧮 Balance Adjusted"
LOG_BROADCAST = "📣 Broadcast"
